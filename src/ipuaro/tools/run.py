"""Run tools: shell commands gated by CommandSecurity, and the test suite."""

import json
import shlex
import tomllib
from pathlib import Path
from typing import Any

from ..exceptions import IpuaroError
from ..logging import get_logger
from ..types import ToolCategory, ToolResult
from .base import BaseTool, ToolContext, now_ms
from .process import run_process
from .security import CommandClassification, CommandSecurity

logger = get_logger(__name__)

DEFAULT_COMMAND_TIMEOUT = 30
MAX_COMMAND_TIMEOUT = 600
TEST_TIMEOUT = 300


class RunCommandTool(BaseTool):
    """Tool running a shell command in the project root.

    Blacklisted commands are refused outright. Whitelisted ones run directly,
    anything else asks the user first. The registry-level confirmation gate is
    not used since the decision depends on the command itself.
    """

    CATEGORY = ToolCategory.RUN

    def __init__(self, security: CommandSecurity | None = None, default_timeout: int = DEFAULT_COMMAND_TIMEOUT):
        self.security = security or CommandSecurity()
        self.default_timeout = default_timeout

    @property
    def name(self) -> str:
        return "run_command"

    @property
    def description(self) -> str:
        return (
            "Run a shell command in the project root and return stdout, stderr and the exit code. "
            "Dangerous commands are blocked, unknown commands need user confirmation."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "command": {"type": "string", "minLength": 1, "description": "Shell command to execute"},
                "timeout": {
                    "type": "integer",
                    "minimum": 1,
                    "description": f"Timeout in seconds (default: {self.default_timeout}, max: {MAX_COMMAND_TIMEOUT})",
                },
            },
            "required": ["command"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        command = params["command"].strip()
        timeout = min(params.get("timeout") or self.default_timeout, MAX_COMMAND_TIMEOUT)

        check = self.security.check(command)
        if check.classification == CommandClassification.BLOCKED:
            logger.warning(f"blocked command: {command}")
            return self._error(start_ms, f"Command blocked for security: {check.reason}")

        if check.classification == CommandClassification.REQUIRES_CONFIRMATION:
            confirmed = await ctx.request_confirmation(f"Run command: {command}")
            if not confirmed:
                return self._error(start_ms, "Command execution cancelled by user")

        try:
            result = await run_process(command, cwd=ctx.project_root, timeout=timeout, shell=True)
        except IpuaroError as e:
            return self._error(start_ms, e.message)

        return self._success(start_ms, {
            "command": command,
            "exit_code": result.exit_code,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "success": result.exit_code == 0,
            "duration_ms": result.duration_ms,
        })


# ==================== test runner detection ====================


def _load_json(path: Path) -> dict[str, Any] | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _has_pytest_config(root: Path) -> bool:
    if (root / "pytest.ini").is_file() or (root / "conftest.py").is_file():
        return True
    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError):
            data = {}
        if "pytest" in data.get("tool", {}):
            return True
    setup_cfg = root / "setup.cfg"
    if setup_cfg.is_file() and "[tool:pytest]" in setup_cfg.read_text(encoding="utf-8", errors="replace"):
        return True
    return (root / "tests").is_dir() and any((root / "tests").glob("test_*.py"))


def detect_test_runner(root: Path) -> str | None:
    """Return the test runner for a project, or None.

    Python projects are checked first (pytest, then tox), then JS projects by
    config file, dependency and finally the npm test script.
    """
    if _has_pytest_config(root):
        return "pytest"
    if (root / "tox.ini").is_file():
        return "tox"

    for name in ("vitest.config.ts", "vitest.config.js", "vitest.config.mts"):
        if (root / name).is_file():
            return "vitest"
    for name in ("jest.config.js", "jest.config.ts", "jest.config.json"):
        if (root / name).is_file():
            return "jest"

    package = _load_json(root / "package.json")
    if package is None:
        return None
    deps = {**package.get("dependencies", {}), **package.get("devDependencies", {})}
    for runner in ("vitest", "jest", "mocha"):
        if runner in deps:
            return runner
    if package.get("scripts", {}).get("test"):
        return "npm"
    return None


def build_test_command(runner: str, path: str | None = None, filter_: str | None = None) -> list[str]:
    if runner == "pytest":
        args = ["python", "-m", "pytest"]
        if path:
            args.append(path)
        if filter_:
            args += ["-k", filter_]
        return args
    if runner == "tox":
        args = ["tox"]
        if path or filter_:
            args.append("--")
        if path:
            args.append(path)
        if filter_:
            args += ["-k", filter_]
        return args
    if runner == "vitest":
        args = ["npx", "vitest", "run"]
        if path:
            args.append(path)
        if filter_:
            args += ["-t", filter_]
        return args
    if runner in ("jest", "mocha"):
        args = ["npx", runner]
        if path:
            args.append(path)
        if filter_:
            args += ["-t", filter_] if runner == "jest" else ["--grep", filter_]
        return args
    args = ["npm", "test"]
    if path or filter_:
        args.append("--")
        args += [a for a in (path, filter_) if a]
    return args


class RunTestsTool(BaseTool):
    """Tool running the project's test suite with the detected runner."""

    CATEGORY = ToolCategory.RUN

    @property
    def name(self) -> str:
        return "run_tests"

    @property
    def description(self) -> str:
        return (
            "Run the project's test suite. Auto-detects the test runner "
            "(pytest, tox, vitest, jest, mocha, npm test)."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Test file or directory to run"},
                "filter": {"type": "string", "description": "Only run tests matching this name pattern"},
            },
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        runner = detect_test_runner(ctx.project_root)
        if runner is None:
            return self._error(
                start_ms,
                "No test runner detected. Add a pytest or tox config, or a 'test' script in package.json.",
            )

        args = build_test_command(runner, params.get("path"), params.get("filter"))
        command = shlex.join(args)
        if ctx.on_progress:
            ctx.on_progress(f"Running {command}")

        try:
            result = await run_process(args, cwd=ctx.project_root, timeout=TEST_TIMEOUT)
        except IpuaroError as e:
            return self._error(start_ms, e.message)
        except FileNotFoundError:
            return self._error(start_ms, f"Test runner not installed: {args[0]}")

        return self._success(start_ms, {
            "runner": runner,
            "command": command,
            "passed": result.exit_code == 0,
            "exit_code": result.exit_code,
            "stdout": result.stdout,
            "stderr": result.stderr,
            "duration_ms": result.duration_ms,
        })
