"""Read tools: file lines, single declarations and project structure."""

from abc import abstractmethod
from typing import Any

from ..types import ClassInfo, FileAST, FunctionInfo, ToolCategory, ToolResult, create_file_data
from .base import BaseTool, ToolContext, now_ms
from .security import PathValidator


async def load_lines(ctx: ToolContext, rel_path: str) -> list[str] | None:
    """Return a file's lines from the index, falling back to disk."""
    data = await ctx.storage.get_file(rel_path)
    if data is not None:
        return data.lines
    path = ctx.project_root / rel_path
    if not path.is_file():
        return None
    content = path.read_text(encoding="utf-8")
    stat = path.stat()
    await ctx.storage.set_file(rel_path, create_file_data(content, stat.st_size, stat.st_mtime * 1000))
    return content.split("\n")


def number_lines(lines: list[str], first: int, last: int) -> str:
    """Render lines first..last (1-based, inclusive) with a right-aligned gutter."""
    width = len(str(last))
    return "\n".join(f"{str(n).rjust(width)}│{lines[n - 1]}" for n in range(first, last + 1))


class GetLinesTool(BaseTool):
    """Tool for reading a range of lines from a file."""

    CATEGORY = ToolCategory.READ

    @property
    def name(self) -> str:
        return "get_lines"

    @property
    def description(self) -> str:
        return (
            "Read lines from a file, numbered from 1. Without start/end the "
            "whole file is returned."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "minLength": 1, "description": "File path relative to the project root"},
                "start": {"type": "integer", "minimum": 1, "description": "First line (inclusive)"},
                "end": {"type": "integer", "minimum": 1, "description": "Last line (inclusive)"},
            },
            "required": ["path"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        rel_path = PathValidator(ctx.project_root).relative(params["path"])

        lines = await load_lines(ctx, rel_path)
        if lines is None:
            return self._error(start_ms, f"File not found: {rel_path}")

        total = len(lines)
        first = max(1, params.get("start") or 1)
        last = min(total, params.get("end") or total)
        if first > last:
            return self._error(start_ms, f"Invalid range {first}-{last} for file with {total} lines")

        numbered = number_lines(lines, first, last)
        return self._success(start_ms, {
            "path": rel_path,
            "start_line": first,
            "end_line": last,
            "total_lines": total,
            "content": numbered,
        })


class GetStructureTool(BaseTool):
    """Tool for showing the indexed project tree."""

    CATEGORY = ToolCategory.READ

    @property
    def name(self) -> str:
        return "get_structure"

    @property
    def description(self) -> str:
        return "Show the project's file tree, optionally limited to a directory and depth."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Directory to show (default: project root)"},
                "depth": {"type": "integer", "minimum": 1, "description": "Maximum depth"},
            },
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        prefix = ""
        if params.get("path"):
            prefix = PathValidator(ctx.project_root).relative(params["path"])
            if prefix == ".":
                prefix = ""
        depth = params.get("depth")

        files = sorted(await ctx.storage.get_all_files())
        if prefix:
            files = [f[len(prefix) + 1:] for f in files if f.startswith(prefix + "/")]

        tree: dict[str, Any] = {}
        for rel in files:
            node = tree
            parts = rel.split("/")
            if depth is not None:
                parts = parts[:depth]
            for part in parts:
                node = node.setdefault(part, {})

        lines: list[str] = []
        self._render(tree, "", lines)
        dirs = sum(1 for line in lines if line.endswith("/"))
        return self._success(start_ms, {
            "path": prefix or ".",
            "tree": "\n".join(lines),
            "files": len(files),
            "directories": dirs,
        })

    def _render(self, node: dict[str, Any], indent: str, out: list[str]) -> None:
        # directories first, then files
        for name in sorted(node, key=lambda n: (not node[n], n)):
            children = node[name]
            out.append(f"{indent}{name}/" if children else f"{indent}{name}")
            if children:
                self._render(children, indent + "  ", out)


class _SymbolTool(BaseTool):
    """Shared lookup of one declaration in a file's stored AST."""

    CATEGORY = ToolCategory.READ
    KIND = ""

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "minLength": 1, "description": "File path relative to the project root"},
                "name": {"type": "string", "minLength": 1, "description": f"{self.KIND.capitalize()} name"},
            },
            "required": ["path", "name"],
        }

    @abstractmethod
    def _find(self, ast: FileAST, name: str) -> FunctionInfo | ClassInfo | None:
        pass

    @abstractmethod
    def _names(self, ast: FileAST) -> list[str]:
        pass

    def _describe(self, symbol: FunctionInfo | ClassInfo) -> dict[str, Any]:
        return {}

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        rel_path = PathValidator(ctx.project_root).relative(params["path"])

        ast = await ctx.storage.get_ast(rel_path)
        if ast is None:
            return self._error(start_ms, f"File not found in index: {rel_path}")

        symbol = self._find(ast, params["name"])
        if symbol is None:
            available = ", ".join(self._names(ast)) or "none"
            return self._error(
                start_ms,
                f"{self.KIND.capitalize()} \"{params['name']}\" not found in {rel_path}. Available: {available}",
            )

        lines = await load_lines(ctx, rel_path)
        if lines is None:
            return self._error(start_ms, f"File not found: {rel_path}")
        last = min(symbol.line_end, len(lines))

        return self._success(start_ms, {
            "path": rel_path,
            "name": symbol.name,
            "line_start": symbol.line_start,
            "line_end": last,
            **self._describe(symbol),
            "content": number_lines(lines, symbol.line_start, last),
        })


class GetFunctionTool(_SymbolTool):
    """Tool for reading one function or method by name."""

    KIND = "function"

    @property
    def name(self) -> str:
        return "get_function"

    @property
    def description(self) -> str:
        return (
            "Read the source of one function from a file. Methods can be "
            "addressed as Class.method."
        )

    def _find(self, ast: FileAST, name: str) -> FunctionInfo | None:
        class_name, _, func_name = name.rpartition(".")
        if not class_name:
            for func in ast.functions:
                if func.name == name:
                    return func
        for cls in ast.classes:
            if class_name and cls.name != class_name:
                continue
            for method in cls.methods:
                if method.name == func_name:
                    return method
        return None

    def _names(self, ast: FileAST) -> list[str]:
        names = [f.name for f in ast.functions]
        for cls in ast.classes:
            names.extend(f"{cls.name}.{m.name}" for m in cls.methods)
        return names

    def _describe(self, symbol: FunctionInfo) -> dict[str, Any]:
        return {
            "params": symbol.params,
            "is_async": symbol.is_async,
            "is_exported": symbol.is_exported,
        }


class GetClassTool(_SymbolTool):
    """Tool for reading one class by name."""

    KIND = "class"

    @property
    def name(self) -> str:
        return "get_class"

    @property
    def description(self) -> str:
        return "Read the source of one class from a file, with its bases and method names."

    def _find(self, ast: FileAST, name: str) -> ClassInfo | None:
        return next((c for c in ast.classes if c.name == name), None)

    def _names(self, ast: FileAST) -> list[str]:
        return [c.name for c in ast.classes]

    def _describe(self, symbol: ClassInfo) -> dict[str, Any]:
        return {
            "bases": symbol.bases,
            "methods": [m.name for m in symbol.methods],
            "is_exported": symbol.is_exported,
        }
