"""Analysis tools over the dependency graph, file metrics and comment markers."""

import re
from abc import abstractmethod
from typing import Any

from ..types import DependencyGraph, ToolCategory, ToolResult
from .base import BaseTool, ToolContext, now_ms
from .security import PathValidator


class _GraphTool(BaseTool):
    """Shared lookup of one file in the dependency graph."""

    CATEGORY = ToolCategory.ANALYSIS
    RESULT_KEY = ""

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "minLength": 1, "description": "File path relative to the project root"},
            },
            "required": ["path"],
        }

    @abstractmethod
    def _edges(self, graph: DependencyGraph, path: str) -> list[str]:
        pass

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        rel_path = PathValidator(ctx.project_root).relative(params["path"])

        if await ctx.storage.get_file(rel_path) is None:
            return self._error(start_ms, f"File not found in index: {rel_path}")

        graph = await ctx.storage.get_deps_graph()
        metas = await ctx.storage.get_all_metas()
        edges = []
        for other in self._edges(graph, rel_path):
            meta = metas.get(other)
            edges.append({
                "path": other,
                "is_hub": meta.is_hub if meta else False,
                "file_type": meta.file_type if meta else "source",
            })

        return self._success(start_ms, {
            "path": rel_path,
            "count": len(edges),
            self.RESULT_KEY: edges,
        })


class GetDependenciesTool(_GraphTool):
    """Tool listing the project files a file imports."""

    RESULT_KEY = "dependencies"

    @property
    def name(self) -> str:
        return "get_dependencies"

    @property
    def description(self) -> str:
        return "List the project files that the given file imports."

    def _edges(self, graph: DependencyGraph, path: str) -> list[str]:
        return graph.dependencies_of(path)


class GetDependentsTool(_GraphTool):
    """Tool listing the project files that import a file."""

    RESULT_KEY = "dependents"

    @property
    def name(self) -> str:
        return "get_dependents"

    @property
    def description(self) -> str:
        return "List the project files that import the given file. Useful before changing a module's API."

    def _edges(self, graph: DependencyGraph, path: str) -> list[str]:
        return graph.dependents_of(path)


def _in_scope(path: str, prefix: str) -> bool:
    return not prefix or path == prefix or path.startswith(prefix + "/")


def _scope(params: dict[str, Any], ctx: ToolContext) -> str:
    if not params.get("path"):
        return ""
    prefix = PathValidator(ctx.project_root).relative(params["path"])
    return "" if prefix == "." else prefix


class GetComplexityTool(BaseTool):
    """Tool ranking files by complexity score."""

    CATEGORY = ToolCategory.ANALYSIS
    DEFAULT_LIMIT = 20

    @property
    def name(self) -> str:
        return "get_complexity"

    @property
    def description(self) -> str:
        return (
            "Rank indexed files by complexity (branch count), most complex first. "
            "Optionally limited to a file or directory."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File or directory (default: whole project)"},
                "limit": {"type": "integer", "minimum": 1, "description": f"Maximum entries (default: {self.DEFAULT_LIMIT})"},
            },
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        prefix = _scope(params, ctx)

        metas = {p: m for p, m in (await ctx.storage.get_all_metas()).items() if _in_scope(p, prefix)}
        if prefix and not metas:
            return self._error(start_ms, f"No analyzed files under {prefix}")

        ranked = sorted(metas.items(), key=lambda item: (-item[1].complexity, item[0]))
        entries = [
            {
                "path": path,
                "complexity": meta.complexity,
                "lines": meta.lines,
                "functions": meta.functions,
                "classes": meta.classes,
                "is_hub": meta.is_hub,
            }
            for path, meta in ranked[: params.get("limit") or self.DEFAULT_LIMIT]
        ]
        total = sum(m.complexity for m in metas.values())
        return self._success(start_ms, {
            "path": prefix or ".",
            "files": len(metas),
            "average_complexity": round(total / len(metas), 2) if metas else 0,
            "entries": entries,
        })


TODO_TYPES = ("TODO", "FIXME", "HACK", "XXX")

# a marker counts only inside a comment
TODO_PATTERN = re.compile(r"(?:#|//|/\*|^\s*\*)\s*(TODO|FIXME|HACK|XXX)\b:?\s*(.*?)\s*(?:\*/)?$")


class GetTodosTool(BaseTool):
    """Tool listing TODO-style comment markers in indexed files."""

    CATEGORY = ToolCategory.ANALYSIS

    @property
    def name(self) -> str:
        return "get_todos"

    @property
    def description(self) -> str:
        return "Find TODO, FIXME, HACK and XXX comments in the indexed files."

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "File or directory (default: whole project)"},
                "type": {"type": "string", "enum": list(TODO_TYPES), "description": "Only this marker"},
            },
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        prefix = _scope(params, ctx)
        wanted = params.get("type")

        todos = []
        by_type = {t: 0 for t in TODO_TYPES}
        files = await ctx.storage.get_all_files()
        for path in sorted(files):
            if not _in_scope(path, prefix):
                continue
            for number, line in enumerate(files[path].lines, start=1):
                match = TODO_PATTERN.search(line)
                if match is None or (wanted and match.group(1) != wanted):
                    continue
                by_type[match.group(1)] += 1
                todos.append({
                    "path": path,
                    "line": number,
                    "type": match.group(1),
                    "text": match.group(2),
                })

        return self._success(start_ms, {
            "path": prefix or ".",
            "count": len(todos),
            "by_type": by_type,
            "todos": todos,
        })
