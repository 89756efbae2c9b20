"""Security utilities for tool execution.

This module provides security primitives for safe file and command operations:
- PathValidator: Keeps tool paths inside the project root
- CommandSecurity: Classifies shell commands as allowed, blocked or
  requiring confirmation
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..exceptions import PathTraversalError


class PathValidator:
    """Validates file paths to prevent directory traversal attacks.

    Relative paths are resolved against the project root, not the process
    working directory.

    Example:
        validator = PathValidator("/home/user/project")
        validator.validate("src/main.py")  # /home/user/project/src/main.py
        validator.validate("../../etc/passwd")  # Raises PathTraversalError
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    def validate(self, path: str) -> Path:
        """Validate and resolve a path.

        Args:
            path: The path to validate (relative to the root, or absolute)

        Returns:
            Resolved absolute Path object

        Raises:
            PathTraversalError: If path escapes the project root
        """
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        resolved = candidate.resolve()

        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise PathTraversalError(attempted_path=str(resolved), allowed_base=str(self.root))
        return resolved

    def relative(self, path: str) -> str:
        """Validate a path and return it relative to the root, POSIX style."""
        return self.validate(path).relative_to(self.root).as_posix()

    def is_valid(self, path: str) -> bool:
        """Check if a path is valid without raising an exception."""
        try:
            self.validate(path)
            return True
        except PathTraversalError:
            return False


# ==================== command classification ====================


class CommandClassification(str, Enum):
    ALLOWED = "allowed"
    BLOCKED = "blocked"
    REQUIRES_CONFIRMATION = "requires_confirmation"


@dataclass
class SecurityCheckResult:
    classification: CommandClassification
    reason: str


DEFAULT_BLACKLIST: list[str] = [
    # destructive file operations
    "rm -rf",
    "rm -r",
    "rm -fr",
    "rmdir",
    # dangerous git operations
    "git push --force",
    "git push -f",
    "git reset --hard",
    "git clean -fd",
    "git clean -f",
    # publishing
    "npm publish",
    "yarn publish",
    "pnpm publish",
    "twine upload",
    # privilege and ownership
    "sudo",
    "su ",
    "chmod",
    "chown",
    # piping into a shell
    "| sh",
    "| bash",
    # environment manipulation
    "export ",
    "unset ",
    # process control
    "kill -9",
    "killall",
    "pkill",
    # disk operations
    "mkfs",
    "fdisk",
    ":(){ :|:& };:",
    "eval ",
]

DEFAULT_WHITELIST: list[str] = [
    # package managers
    "npm", "pnpm", "yarn", "npx", "bun", "pip", "uv", "poetry",
    # runtimes
    "node", "tsx", "ts-node", "python", "python3",
    "git",
    # build tools
    "tsc", "tsup", "esbuild", "vite", "webpack", "rollup",
    # test runners
    "vitest", "jest", "mocha", "playwright", "cypress", "pytest", "tox",
    # linters and formatters
    "eslint", "prettier", "biome", "ruff", "mypy", "black",
    # read-only shell utilities
    "echo", "cat", "ls", "pwd", "which", "head", "tail", "grep", "find", "wc", "sort", "diff",
]

SAFE_GIT_SUBCOMMANDS: list[str] = [
    "status", "log", "diff", "show", "branch", "remote", "fetch", "pull",
    "stash", "tag", "blame", "ls-files", "ls-tree", "rev-parse", "describe",
]


class CommandSecurity:
    """Blacklist/whitelist classifier for shell commands.

    A blacklisted substring anywhere in the command blocks it, even when the
    command starts with a whitelisted program. Lists only ever grow.
    """

    def __init__(
        self,
        blacklist: list[str] | None = None,
        whitelist: list[str] | None = None,
    ):
        self._blacklist = list(DEFAULT_BLACKLIST)
        self._whitelist = list(DEFAULT_WHITELIST)
        if blacklist:
            self.add_to_blacklist(blacklist)
        if whitelist:
            self.add_to_whitelist(whitelist)

    def check(self, command: str) -> SecurityCheckResult:
        normalized = command.strip().lower()

        pattern = self._blacklisted_pattern(normalized)
        if pattern is not None:
            return SecurityCheckResult(
                CommandClassification.BLOCKED,
                f"Command contains blocked pattern: '{pattern}'",
            )

        if self._is_whitelisted(normalized):
            return SecurityCheckResult(
                CommandClassification.ALLOWED,
                "Command is in the whitelist",
            )

        return SecurityCheckResult(
            CommandClassification.REQUIRES_CONFIRMATION,
            "Command is not in the whitelist and requires user confirmation",
        )

    def _blacklisted_pattern(self, command: str) -> str | None:
        for pattern in self._blacklist:
            if pattern in command:
                return pattern
        return None

    def _is_whitelisted(self, command: str) -> bool:
        parts = command.split()
        if not parts or parts[0] not in self._whitelist:
            return False
        if parts[0] == "git":
            return len(parts) >= 2 and parts[1] in SAFE_GIT_SUBCOMMANDS
        return True

    def add_to_blacklist(self, patterns: list[str]) -> None:
        for pattern in patterns:
            normalized = pattern.lower()
            if normalized not in self._blacklist:
                self._blacklist.append(normalized)

    def add_to_whitelist(self, commands: list[str]) -> None:
        for command in commands:
            normalized = command.lower()
            if normalized not in self._whitelist:
                self._whitelist.append(normalized)

    def get_blacklist(self) -> list[str]:
        return list(self._blacklist)

    def get_whitelist(self) -> list[str]:
        return list(self._whitelist)
