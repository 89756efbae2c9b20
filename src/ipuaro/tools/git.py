"""Git tools: status, diff and commit."""

from typing import Any

from ..exceptions import IpuaroError
from ..types import ToolCategory, ToolResult
from .base import BaseTool, ToolContext, now_ms
from .process import ProcessResult, run_process
from .security import PathValidator

GIT_TIMEOUT = 30


async def run_git(ctx: ToolContext, *args: str) -> ProcessResult:
    return await run_process(["git", *args], cwd=ctx.project_root, timeout=GIT_TIMEOUT)


async def is_git_repo(ctx: ToolContext) -> bool:
    try:
        result = await run_git(ctx, "rev-parse", "--is-inside-work-tree")
    except (OSError, IpuaroError):
        return False
    return result.exit_code == 0 and result.stdout.strip() == "true"


def parse_porcelain_status(output: str) -> dict[str, Any]:
    """Parse `git status --porcelain -b` output.

    Returns:
        Branch name, tracking info and staged/modified/untracked/conflicted paths
    """
    status: dict[str, Any] = {
        "branch": "",
        "tracking": None,
        "staged": [],
        "modified": [],
        "untracked": [],
        "conflicted": [],
    }
    for line in output.splitlines():
        if line.startswith("## "):
            head = line[3:]
            branch, _, tracking = head.partition("...")
            status["branch"] = branch.split(" ")[0]
            status["tracking"] = tracking or None
            continue
        if len(line) < 4:
            continue
        index, worktree, path = line[0], line[1], line[3:]
        if index == "?" and worktree == "?":
            status["untracked"].append(path)
        elif "U" in (index, worktree) or (index, worktree) in (("A", "A"), ("D", "D")):
            status["conflicted"].append(path)
        else:
            if index not in (" ", "?"):
                status["staged"].append({"path": path, "status": index})
            if worktree not in (" ", "?"):
                status["modified"].append({"path": path, "status": worktree})
    status["is_clean"] = not any(
        status[key] for key in ("staged", "modified", "untracked", "conflicted")
    )
    return status


class GitStatusTool(BaseTool):
    """Tool reporting the working tree status."""

    CATEGORY = ToolCategory.GIT

    @property
    def name(self) -> str:
        return "git_status"

    @property
    def description(self) -> str:
        return "Show the current branch and the staged, modified, untracked and conflicted files."

    @property
    def parameters(self) -> dict[str, Any]:
        return {"type": "object", "properties": {}}

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        if not await is_git_repo(ctx):
            return self._error(start_ms, "Not a git repository. Initialize with 'git init' first.")

        result = await run_git(ctx, "status", "--porcelain", "-b")
        if result.exit_code != 0:
            return self._error(start_ms, result.stderr.strip() or "git status failed")
        return self._success(start_ms, parse_porcelain_status(result.stdout))


class GitDiffTool(BaseTool):
    """Tool showing uncommitted changes."""

    CATEGORY = ToolCategory.GIT

    @property
    def name(self) -> str:
        return "git_diff"

    @property
    def description(self) -> str:
        return "Show uncommitted changes, optionally limited to a path or to staged changes only."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Limit the diff to this file or directory"},
                "staged": {"type": "boolean", "description": "Show staged changes (default: false)"},
            },
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        if not await is_git_repo(ctx):
            return self._error(start_ms, "Not a git repository. Initialize with 'git init' first.")

        args = ["diff"]
        if params.get("staged"):
            args.append("--cached")
        if params.get("path"):
            args += ["--", PathValidator(ctx.project_root).relative(params["path"])]

        result = await run_git(ctx, *args)
        if result.exit_code != 0:
            return self._error(start_ms, result.stderr.strip() or "git diff failed")

        diff = result.stdout
        files = [
            line[len("diff --git a/"):].split(" b/")[0]
            for line in diff.splitlines()
            if line.startswith("diff --git a/")
        ]
        return self._success(start_ms, {
            "staged": bool(params.get("staged")),
            "has_changes": bool(diff.strip()),
            "files": files,
            "diff": diff,
        })


class GitCommitTool(BaseTool):
    """Tool creating a commit, optionally staging files first."""

    REQUIRES_CONFIRMATION = True
    CATEGORY = ToolCategory.GIT

    @property
    def name(self) -> str:
        return "git_commit"

    @property
    def description(self) -> str:
        return (
            "Create a git commit with the given message. When files are given they are "
            "staged first, otherwise the current index is committed."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "message": {"type": "string", "minLength": 1, "description": "Commit message"},
                "files": {
                    "type": "array",
                    "items": {"type": "string"},
                    "description": "Files to stage before committing",
                },
            },
            "required": ["message"],
        }

    def get_confirmation_message(self, params: dict[str, Any]) -> str:
        message = params.get("message", "")
        files = params.get("files") or []
        if files:
            return f'Commit {len(files)} file(s) with message: "{message}"'
        return f'Commit staged changes with message: "{message}"'

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        if not await is_git_repo(ctx):
            return self._error(start_ms, "Not a git repository. Initialize with 'git init' first.")

        files = params.get("files") or []
        if files:
            validator = PathValidator(ctx.project_root)
            rel_files = [validator.relative(f) for f in files]
            added = await run_git(ctx, "add", "--", *rel_files)
            if added.exit_code != 0:
                return self._error(start_ms, added.stderr.strip() or "git add failed")

        staged = await run_git(ctx, "diff", "--cached", "--name-only")
        staged_files = [line for line in staged.stdout.splitlines() if line.strip()]
        if not staged_files:
            return self._error(start_ms, "Nothing to commit. Stage files first or pass them in 'files'.")

        result = await run_git(ctx, "commit", "-m", params["message"])
        if result.exit_code != 0:
            return self._error(start_ms, result.stderr.strip() or result.stdout.strip() or "git commit failed")

        head = await run_git(ctx, "rev-parse", "--short", "HEAD")
        return self._success(start_ms, {
            "hash": head.stdout.strip(),
            "message": params["message"],
            "files": staged_files,
        })
