"""Edit tools.

Every edit tool needs confirmation and returns an ``undo`` payload in its result
data (file path, content before and after, description). The agent turns
that payload into an UndoEntry and strips it before the result reaches the
model.
"""

from pathlib import Path
from typing import Any

from ..types import ToolCategory, ToolResult, create_file_data, md5
from .base import BaseTool, ToolContext, now_ms
from .security import PathValidator

UNDO_KEY = "undo"


def _read_current(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


async def _write_and_index(ctx: ToolContext, rel_path: str, path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    stat = path.stat()
    await ctx.storage.set_file(rel_path, create_file_data(content, stat.st_size, stat.st_mtime * 1000))


class EditLinesTool(BaseTool):
    """Tool for replacing a range of lines in a file."""

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Replace lines {start}-{end} in {path}"
    CATEGORY = ToolCategory.EDIT

    @property
    def name(self) -> str:
        return "edit_lines"

    @property
    def description(self) -> str:
        return (
            "Replace lines start..end (inclusive, 1-based) of a file with new content. "
            "Use an empty content to delete the lines."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "minLength": 1, "description": "File path relative to the project root"},
                "start": {"type": "integer", "minimum": 1, "description": "First line to replace"},
                "end": {"type": "integer", "minimum": 1, "description": "Last line to replace"},
                "content": {"type": "string", "description": "Replacement text"},
            },
            "required": ["path", "start", "end", "content"],
        }

    def validate_params(self, params: dict[str, Any]) -> str | None:
        error = super().validate_params(params)
        if error:
            return error
        if params["end"] < params["start"]:
            return "Parameter 'end' must be >= 'start'"
        return None

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        rel_path = PathValidator(ctx.project_root).relative(params["path"])
        path = ctx.project_root / rel_path

        current = _read_current(path)
        if current is None:
            return self._error(start_ms, f"File not found: {rel_path}")

        stored = await ctx.storage.get_file(rel_path)
        if stored is not None and stored.hash != md5(current):
            return self._error(
                start_ms,
                "File has been modified externally. Re-read it with get_lines before editing.",
            )

        lines = current.split("\n")
        start, end = params["start"], params["end"]
        if start > len(lines):
            return self._error(start_ms, f"Start line {start} is beyond the end of the file ({len(lines)} lines)")
        end = min(end, len(lines))

        replacement = params["content"].split("\n") if params["content"] else []
        new_lines = lines[:start - 1] + replacement + lines[end:]
        await _write_and_index(ctx, rel_path, path, "\n".join(new_lines))

        return self._success(start_ms, {
            "path": rel_path,
            "lines_removed": end - start + 1,
            "lines_added": len(replacement),
            "total_lines": len(new_lines),
            UNDO_KEY: {
                "file_path": rel_path,
                "previous_content": lines,
                "new_content": new_lines,
                "description": f"Edit lines {start}-{end} of {rel_path}",
            },
        })


class CreateFileTool(BaseTool):
    """Tool for creating a new file or overwriting an existing one."""

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Create file {path}"
    CATEGORY = ToolCategory.EDIT

    @property
    def name(self) -> str:
        return "create_file"

    @property
    def description(self) -> str:
        return "Create a file with the given content. Parent directories are created as needed."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "minLength": 1, "description": "File path relative to the project root"},
                "content": {"type": "string", "description": "Full file content"},
                "overwrite": {"type": "boolean", "description": "Replace an existing file (default: false)"},
            },
            "required": ["path", "content"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        rel_path = PathValidator(ctx.project_root).relative(params["path"])
        path = ctx.project_root / rel_path

        current = _read_current(path)
        if current is not None and not params.get("overwrite", False):
            return self._error(start_ms, f"File already exists: {rel_path}. Set overwrite to replace it.")

        content = params["content"]
        await _write_and_index(ctx, rel_path, path, content)

        new_lines = content.split("\n")
        return self._success(start_ms, {
            "path": rel_path,
            "lines": len(new_lines),
            "created": current is None,
            UNDO_KEY: {
                "file_path": rel_path,
                "previous_content": current.split("\n") if current is not None else [],
                "new_content": new_lines,
                "description": f"{'Create' if current is None else 'Overwrite'} {rel_path}",
            },
        })


class DeleteFileTool(BaseTool):
    """Tool for deleting a file and dropping it from the index."""

    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Delete file {path}"
    CATEGORY = ToolCategory.EDIT

    @property
    def name(self) -> str:
        return "delete_file"

    @property
    def description(self) -> str:
        return "Delete a file from the project. The deletion can be undone."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "minLength": 1, "description": "File path relative to the project root"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        rel_path = PathValidator(ctx.project_root).relative(params["path"])
        path = ctx.project_root / rel_path

        if path.is_dir():
            return self._error(start_ms, f"Not a file: {rel_path}")
        current = _read_current(path)
        if current is None:
            return self._error(start_ms, f"File not found: {rel_path}")

        path.unlink()
        await ctx.storage.delete_file(rel_path)

        previous = current.split("\n")
        return self._success(start_ms, {
            "path": rel_path,
            "deleted": True,
            "lines": len(previous),
            UNDO_KEY: {
                "file_path": rel_path,
                "previous_content": previous,
                "new_content": [],
                "description": f"Delete {rel_path}",
            },
        })
