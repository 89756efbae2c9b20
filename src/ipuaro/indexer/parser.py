"""Structural parsing of source files.

Python files are parsed with the standard library ``ast`` module. TypeScript
and JavaScript files go through a lexical parser: comments and strings are
masked, then declarations are matched line by line at brace depth zero.
Neither parser raises; a file that cannot be parsed yields a FileAST with
parse_error set.
"""

import ast
import re
from pathlib import Path
from typing import Literal

from ..logging import get_logger
from ..types import (
    ClassInfo,
    ExportInfo,
    FileAST,
    FunctionInfo,
    ImportInfo,
    VariableInfo,
)

logger = get_logger(__name__)

Language = Literal["python", "ts", "tsx", "js", "jsx"]

LANGUAGE_BY_EXTENSION: dict[str, Language] = {
    ".py": "python",
    ".pyi": "python",
    ".ts": "ts",
    ".tsx": "tsx",
    ".js": "js",
    ".jsx": "jsx",
    ".mjs": "js",
    ".cjs": "js",
}


def detect_language(path: str) -> Language | None:
    """Return the parser language for a path, or None when it is not parsed."""
    return LANGUAGE_BY_EXTENSION.get(Path(path).suffix.lower())


class ASTParser:
    """Dispatches a file to the parser for its language."""

    def parse(self, content: str, language: Language) -> FileAST:
        if language == "python":
            return parse_python(content)
        return parse_js_ts(content)


# ==================== python ====================


class _PythonCollector(ast.NodeVisitor):
    """Collects module-level declarations and every import."""

    def __init__(self) -> None:
        self.result = FileAST()
        self.explicit_all: list[str] | None = None
        self._depth = 0

    def visit_Import(self, node: ast.Import) -> None:  # noqa: N802
        for alias in node.names:
            self.result.imports.append(ImportInfo(
                name=alias.asname or alias.name,
                source=alias.name,
                line=node.lineno,
            ))

    def visit_ImportFrom(self, node: ast.ImportFrom) -> None:  # noqa: N802
        source = "." * node.level + (node.module or "")
        for alias in node.names:
            self.result.imports.append(ImportInfo(
                name=alias.asname or alias.name,
                source=source,
                line=node.lineno,
                is_relative=node.level > 0,
            ))

    def visit_If(self, node: ast.If) -> None:  # noqa: N802
        # `if TYPE_CHECKING:` imports are type-only
        if isinstance(node.test, ast.Name) and node.test.id == "TYPE_CHECKING":
            start = len(self.result.imports)
            self.generic_visit(node)
            for info in self.result.imports[start:]:
                info.is_type_only = True
            return
        self.generic_visit(node)

    def visit_FunctionDef(self, node: ast.FunctionDef) -> None:  # noqa: N802
        self._add_function(node)

    def visit_AsyncFunctionDef(self, node: ast.AsyncFunctionDef) -> None:  # noqa: N802
        self._add_function(node)

    def _add_function(self, node: ast.FunctionDef | ast.AsyncFunctionDef) -> None:
        if self._depth == 0:
            self.result.functions.append(_function_info(node))
        self._depth += 1
        self.generic_visit(node)
        self._depth -= 1

    def visit_ClassDef(self, node: ast.ClassDef) -> None:  # noqa: N802
        if self._depth == 0:
            methods = [
                _function_info(child)
                for child in node.body
                if isinstance(child, (ast.FunctionDef, ast.AsyncFunctionDef))
            ]
            self.result.classes.append(ClassInfo(
                name=node.name,
                line_start=node.lineno,
                line_end=node.end_lineno or node.lineno,
                methods=methods,
                bases=[ast.unparse(base) for base in node.bases],
            ))
        self._depth += 1
        self.generic_visit(node)
        self._depth -= 1

    def visit_Assign(self, node: ast.Assign) -> None:  # noqa: N802
        if self._depth == 0:
            for target in node.targets:
                if isinstance(target, ast.Name):
                    self._add_variable(target.id, node.lineno, node.value)
        self.generic_visit(node)

    def visit_AnnAssign(self, node: ast.AnnAssign) -> None:  # noqa: N802
        if self._depth == 0 and isinstance(node.target, ast.Name):
            self._add_variable(node.target.id, node.lineno, node.value)
        self.generic_visit(node)

    def _add_variable(self, name: str, line: int, value: ast.expr | None) -> None:
        if name == "__all__" and isinstance(value, (ast.List, ast.Tuple)):
            self.explicit_all = [
                elt.value for elt in value.elts
                if isinstance(elt, ast.Constant) and isinstance(elt.value, str)
            ]
            return
        self.result.variables.append(VariableInfo(name=name, line=line))


def _function_info(node: ast.FunctionDef | ast.AsyncFunctionDef) -> FunctionInfo:
    args = node.args
    params = [a.arg for a in args.posonlyargs + args.args + args.kwonlyargs]
    if args.vararg:
        params.append(f"*{args.vararg.arg}")
    if args.kwarg:
        params.append(f"**{args.kwarg.arg}")
    return FunctionInfo(
        name=node.name,
        line_start=node.lineno,
        line_end=node.end_lineno or node.lineno,
        params=params,
        is_async=isinstance(node, ast.AsyncFunctionDef),
    )


def parse_python(content: str) -> FileAST:
    try:
        tree = ast.parse(content)
    except (SyntaxError, ValueError) as e:
        return FileAST(parse_error=True, parse_error_message=str(e))

    collector = _PythonCollector()
    collector.visit(tree)
    result = collector.result

    # without __all__, every public module-level name is exported
    def exported(name: str) -> bool:
        if collector.explicit_all is not None:
            return name in collector.explicit_all
        return not name.startswith("_")

    for fn in result.functions:
        fn.is_exported = exported(fn.name)
        if fn.is_exported:
            result.exports.append(ExportInfo(name=fn.name, line=fn.line_start, kind="function"))
    for cls in result.classes:
        cls.is_exported = exported(cls.name)
        if cls.is_exported:
            result.exports.append(ExportInfo(name=cls.name, line=cls.line_start, kind="class"))
    for var in result.variables:
        var.is_exported = exported(var.name)
        if var.is_exported:
            result.exports.append(ExportInfo(name=var.name, line=var.line, kind="variable"))

    result.exports.sort(key=lambda e: e.line)
    return result


# ==================== typescript / javascript ====================

_IDENT = r"[A-Za-z_$][A-Za-z0-9_$]*"

_IMPORT_FROM_RE = re.compile(r"^\s*import\s+(type\s+)?(.+?)\s+from\s+(['\"])(.+?)\3")
_IMPORT_BARE_RE = re.compile(r"^\s*import\s+(['\"])(.+?)\1")
_REQUIRE_RE = re.compile(r"require\(\s*(['\"])(.+?)\1\s*\)")
_EXPORT_FROM_RE = re.compile(r"^\s*export\s+(?:type\s+)?(?:\*|\{[^}]*\})\s+from\s+(['\"])(.+?)\1")
_CLASS_RE = re.compile(
    rf"^\s*(export\s+)?(?:default\s+)?(?:abstract\s+)?class\s+({_IDENT})"
    rf"(?:\s+extends\s+({_IDENT}))?"
)
_FUNCTION_RE = re.compile(
    rf"^\s*(export\s+)?(?:default\s+)?(async\s+)?function\s*\*?\s*({_IDENT})\s*(?:<[^>]*>)?\s*\(([^)]*)\)"
)
_ARROW_RE = re.compile(
    rf"^\s*(export\s+)?(?:const|let|var)\s+({_IDENT})\s*(?::[^=]+)?=\s*(async\s+)?"
    rf"(?:\(([^)]*)\)|({_IDENT}))\s*(?::[^=]+)?=>"
)
_VARIABLE_RE = re.compile(rf"^\s*(export\s+)?(?:const|let|var)\s+({_IDENT})")
_TYPE_RE = re.compile(rf"^\s*(export\s+)?(?:interface|type|enum)\s+({_IDENT})")
_EXPORT_LIST_RE = re.compile(r"^\s*export\s*\{([^}]*)\}")
_METHOD_RE = re.compile(
    r"^\s*(?:(?:public|private|protected|static|readonly|override|abstract|get|set)\s+)*"
    rf"(async\s+)?({_IDENT})\s*(?:<[^>]*>)?\s*\(([^)]*)\)"
)
_SKIP_METHOD_NAMES = {"if", "for", "while", "switch", "catch", "function", "return"}

_PAIRS = {"}": "{", ")": "(", "]": "["}


class LexicalError(Exception):
    pass


def mask_comments_and_strings(text: str) -> str:
    """Blank out comments and string bodies, keeping line and column positions.

    Raises:
        LexicalError: On an unterminated string or block comment.
    """
    out: list[str] = []
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        nxt = text[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            end = text.find("\n", i)
            end = n if end == -1 else end
            out.append(" " * (end - i))
            i = end
        elif ch == "/" and nxt == "*":
            end = text.find("*/", i + 2)
            if end == -1:
                raise LexicalError("unterminated block comment")
            out.append(_blank(text[i:end + 2]))
            i = end + 2
        elif ch in ("'", '"', "`"):
            j = i + 1
            while j < n and text[j] != ch:
                if text[j] == "\\":
                    j += 1
                elif text[j] == "\n" and ch != "`":
                    raise LexicalError(f"unterminated string literal on line {text.count(chr(10), 0, i) + 1}")
                j += 1
            if j >= n:
                raise LexicalError("unterminated string literal")
            # quotes are kept so import sources stay matchable
            out.append(ch + _blank(text[i + 1:j]) + ch)
            i = j + 1
        else:
            out.append(ch)
            i += 1
    return "".join(out)


def _blank(segment: str) -> str:
    return "".join("\n" if c == "\n" else " " for c in segment)


def _check_balance(masked: str) -> None:
    stack: list[tuple[str, int]] = []
    line = 1
    for ch in masked:
        if ch == "\n":
            line += 1
        elif ch in "{([":
            stack.append((ch, line))
        elif ch in _PAIRS:
            if not stack or stack[-1][0] != _PAIRS[ch]:
                raise LexicalError(f"unexpected '{ch}' on line {line}")
            stack.pop()
    if stack:
        raise LexicalError(f"unclosed '{stack[-1][0]}' opened on line {stack[-1][1]}")


def _line_depths(masked: str) -> list[int]:
    depths: list[int] = []
    depth = 0
    for line in masked.split("\n"):
        depths.append(depth)
        depth += line.count("{") - line.count("}")
    return depths


def _block_end(lines: list[str], depths: list[int], start: int) -> int:
    """Return the 1-based line closing the block opened at or after start."""
    base = depths[start]
    opened = False
    depth = base
    for idx in range(start, len(lines)):
        for ch in lines[idx]:
            if ch == "{":
                depth += 1
                opened = True
            elif ch == "}":
                depth -= 1
        if opened and depth <= base:
            return idx + 1
    return start + 1


def _params(raw: str | None) -> list[str]:
    if not raw:
        return []
    names = []
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        name = re.split(r"[:=?]", part, maxsplit=1)[0].strip()
        names.append(name)
    return names


def parse_js_ts(content: str) -> FileAST:
    try:
        masked = mask_comments_and_strings(content)
        _check_balance(masked)
    except LexicalError as e:
        return FileAST(parse_error=True, parse_error_message=str(e))

    raw_lines = content.split("\n")
    lines = masked.split("\n")
    depths = _line_depths(masked)
    result = FileAST()
    exported_names: set[str] = set()

    for idx, line in enumerate(lines):
        line_no = idx + 1
        raw = raw_lines[idx]

        for match in _REQUIRE_RE.finditer(line):
            source = re.search(r"require\(\s*(['\"])(.+?)\1", raw[match.start():])
            if source:
                spec = source.group(2)
                result.imports.append(ImportInfo(
                    name=spec, source=spec, line=line_no, is_relative=spec.startswith("."),
                ))

        if depths[idx] != 0:
            continue

        m = _IMPORT_FROM_RE.match(raw) if _IMPORT_FROM_RE.match(line) else None
        if m:
            source = m.group(4)
            names = re.findall(_IDENT, re.sub(r"\bas\s+", "", m.group(2)))
            for name in names or [source]:
                if name == "type":
                    continue
                result.imports.append(ImportInfo(
                    name=name,
                    source=source,
                    line=line_no,
                    is_relative=source.startswith("."),
                    is_type_only=bool(m.group(1)),
                ))
            continue

        m = _IMPORT_BARE_RE.match(raw) if _IMPORT_BARE_RE.match(line) else None
        if m:
            source = m.group(2)
            result.imports.append(ImportInfo(
                name=source, source=source, line=line_no, is_relative=source.startswith("."),
            ))
            continue

        m = _EXPORT_FROM_RE.match(raw) if _EXPORT_FROM_RE.match(line) else None
        if m:
            source = m.group(2)
            result.imports.append(ImportInfo(
                name=source, source=source, line=line_no, is_relative=source.startswith("."),
            ))
            continue

        m = _CLASS_RE.match(line)
        if m:
            end = _block_end(lines, depths, idx)
            cls = ClassInfo(
                name=m.group(2),
                line_start=line_no,
                line_end=end,
                bases=[m.group(3)] if m.group(3) else [],
                is_exported=bool(m.group(1)),
                methods=_class_methods(lines, depths, idx, end),
            )
            result.classes.append(cls)
            if cls.is_exported:
                exported_names.add(cls.name)
                result.exports.append(ExportInfo(name=cls.name, line=line_no, kind="class"))
            continue

        m = _FUNCTION_RE.match(line)
        if m:
            fn = FunctionInfo(
                name=m.group(3),
                line_start=line_no,
                line_end=_block_end(lines, depths, idx),
                params=_params(m.group(4)),
                is_async=bool(m.group(2)),
                is_exported=bool(m.group(1)),
            )
            result.functions.append(fn)
            if fn.is_exported:
                result.exports.append(ExportInfo(name=fn.name, line=line_no, kind="function"))
            continue

        m = _ARROW_RE.match(line)
        if m:
            fn = FunctionInfo(
                name=m.group(2),
                line_start=line_no,
                line_end=_block_end(lines, depths, idx) if "{" in line else line_no,
                params=_params(m.group(4) or m.group(5)),
                is_async=bool(m.group(3)),
                is_exported=bool(m.group(1)),
            )
            result.functions.append(fn)
            if fn.is_exported:
                result.exports.append(ExportInfo(name=fn.name, line=line_no, kind="function"))
            continue

        m = _TYPE_RE.match(line)
        if m:
            if m.group(1):
                result.exports.append(ExportInfo(name=m.group(2), line=line_no, kind="type"))
            continue

        m = _VARIABLE_RE.match(line)
        if m:
            var = VariableInfo(name=m.group(2), line=line_no, is_exported=bool(m.group(1)))
            result.variables.append(var)
            if var.is_exported:
                result.exports.append(ExportInfo(name=var.name, line=line_no, kind="variable"))
            continue

        m = _EXPORT_LIST_RE.match(line)
        if m:
            for part in m.group(1).split(","):
                names = part.split(" as ")
                local = names[0].strip()
                public = names[-1].strip()
                if public:
                    result.exports.append(ExportInfo(name=public, line=line_no))
                    exported_names.add(local)

    # `export { a, b }` marks earlier declarations as exported
    for fn in result.functions:
        if fn.name in exported_names:
            fn.is_exported = True
    for var in result.variables:
        if var.name in exported_names:
            var.is_exported = True

    return result


def _class_methods(lines: list[str], depths: list[int], start: int, end: int) -> list[FunctionInfo]:
    methods: list[FunctionInfo] = []
    class_depth = depths[start] + 1
    for idx in range(start + 1, min(end, len(lines))):
        if depths[idx] != class_depth:
            continue
        m = _METHOD_RE.match(lines[idx])
        if not m or m.group(2) in _SKIP_METHOD_NAMES:
            continue
        methods.append(FunctionInfo(
            name=m.group(2),
            line_start=idx + 1,
            line_end=_block_end(lines, depths, idx),
            params=_params(m.group(3)),
            is_async=bool(m.group(1)),
        ))
    return methods
