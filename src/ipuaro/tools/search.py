"""Search tools backed by the symbol index and stored file contents."""

import re
from pathlib import Path
from typing import Any

from ..types import SymbolLocation, ToolCategory, ToolResult
from .base import BaseTool, ToolContext, now_ms
from .read import load_lines

MAX_SUGGESTIONS = 5


def format_context(lines: list[str], index: int, radius: int) -> str:
    """Render lines around index, marking the focused one with '>'."""
    first = max(0, index - radius)
    last = min(len(lines) - 1, index + radius)
    out = []
    for i in range(first, last + 1):
        marker = ">" if i == index else " "
        out.append(f"{marker}{str(i + 1).rjust(4)}│{lines[i]}")
    return "\n".join(out)


def levenshtein(a: str, b: str) -> int:
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def symbol_pattern(symbol: str) -> re.Pattern[str]:
    """Match symbol as a whole word, also for names like $value."""
    escaped = re.escape(symbol)
    prefix = r"\b" if re.match(r"\w", symbol) else r"(?<![\w$])"
    suffix = r"\b" if re.search(r"\w$", symbol) else r"(?![\w$])"
    return re.compile(f"{prefix}{escaped}{suffix}")


class FindDefinitionTool(BaseTool):
    """Tool for locating where a symbol is defined."""

    CATEGORY = ToolCategory.SEARCH
    CONTEXT_LINES = 2

    @property
    def name(self) -> str:
        return "find_definition"

    @property
    def description(self) -> str:
        return (
            "Find where a symbol (function, class, method, variable) is defined. "
            "Methods are indexed as Class.method. Suggests similar names when nothing matches."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "symbol": {"type": "string", "minLength": 1, "description": "Symbol name to look up"},
            },
            "required": ["symbol"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        symbol = params["symbol"].strip()
        index = await ctx.storage.get_symbol_index()

        locations = index.get(symbol)
        if not locations:
            suggestions = self.find_similar(symbol, list(index))
            data: dict[str, Any] = {"symbol": symbol, "found": False, "definitions": []}
            if suggestions:
                data["suggestions"] = suggestions
            return self._success(start_ms, data)

        definitions = []
        for loc in sorted(locations, key=lambda item: (item.path, item.line)):
            definitions.append({
                "path": loc.path,
                "line": loc.line,
                "kind": loc.kind,
                "context": await self._context(loc, ctx),
            })
        return self._success(start_ms, {"symbol": symbol, "found": True, "definitions": definitions})

    async def _context(self, loc: SymbolLocation, ctx: ToolContext) -> str:
        try:
            lines = await load_lines(ctx, loc.path)
        except (OSError, UnicodeDecodeError):
            return ""
        if not lines or loc.line > len(lines):
            return ""
        return format_context(lines, loc.line - 1, self.CONTEXT_LINES)

    def find_similar(self, symbol: str, names: list[str]) -> list[str]:
        lower = symbol.lower()
        suggestions: list[str] = []
        for name in names:
            if len(suggestions) >= MAX_SUGGESTIONS:
                break
            candidate = name.lower()
            if lower in candidate or candidate in lower or levenshtein(lower, candidate) <= 2:
                suggestions.append(name)
        return sorted(suggestions)


class FindReferencesTool(BaseTool):
    """Tool for finding every usage of a symbol in the indexed files."""

    CATEGORY = ToolCategory.SEARCH
    CONTEXT_LINES = 1

    @property
    def name(self) -> str:
        return "find_references"

    @property
    def description(self) -> str:
        return (
            "Find all usages of a symbol across the codebase. "
            "Returns list of file paths, line numbers, and context."
        )

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "symbol": {
                    "type": "string",
                    "minLength": 1,
                    "description": "Symbol name to search for (function, class, variable, etc.)",
                },
                "path": {"type": "string", "description": "Limit search to specific file or directory"},
            },
            "required": ["symbol"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        start_ms = now_ms()
        symbol = params["symbol"].strip()
        definitions = (await ctx.storage.get_symbol_index()).get(symbol, [])
        definition_lines = {(d.path, d.line) for d in definitions}

        files = await ctx.storage.get_all_files()
        filter_path = params.get("path")
        if filter_path:
            prefix = filter_path
            if Path(filter_path).is_absolute():
                prefix = Path(filter_path).resolve().relative_to(ctx.project_root.resolve()).as_posix()
            prefix = prefix.rstrip("/")
            files = {p: d for p, d in files.items() if p == prefix or p.startswith(prefix + "/")}

        pattern = symbol_pattern(symbol)
        references = []
        for path in sorted(files):
            lines = files[path].lines
            for idx, line in enumerate(lines):
                for match in pattern.finditer(line):
                    references.append({
                        "path": path,
                        "line": idx + 1,
                        "column": match.start() + 1,
                        "context": format_context(lines, idx, self.CONTEXT_LINES),
                        "is_definition": (path, idx + 1) in definition_lines,
                    })

        return self._success(start_ms, {
            "symbol": symbol,
            "total_references": len(references),
            "files": len({r["path"] for r in references}),
            "references": references,
            "definition_locations": [
                {"path": d.path, "line": d.line, "kind": d.kind} for d in definitions
            ],
        })
