"""Symbol index and dependency graph construction.

Both artifacts are always built over the complete set of parsed files so
that every cross-file edge points at a file of the same snapshot.
"""

import posixpath

from ..logging import get_logger
from ..types import DependencyGraph, FileAST, ImportInfo, SymbolIndex, SymbolLocation

logger = get_logger(__name__)

JS_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs")
PY_SOURCE_ROOTS = ("", "src/")


class ImportResolver:
    """Maps an import of one project file to another project file.

    Imports that resolve outside the project (stdlib, packages) give None.
    """

    def __init__(self, known_paths: set[str]):
        self.known_paths = known_paths

    def resolve(self, from_path: str, imp: ImportInfo) -> str | None:
        if from_path.endswith((".py", ".pyi")):
            return self._resolve_python(from_path, imp)
        return self._resolve_js(from_path, imp)

    def _first_known(self, candidates: list[str]) -> str | None:
        for candidate in candidates:
            if candidate in self.known_paths:
                return candidate
        return None

    def _python_candidates(self, base: str, parts: list[str]) -> list[str]:
        stem = posixpath.join(base, *parts) if parts else base
        if not stem or stem == ".":
            return []
        return [f"{stem}.py", f"{stem}.pyi", f"{stem}/__init__.py"]

    def _resolve_python(self, from_path: str, imp: ImportInfo) -> str | None:
        source = imp.source
        if imp.is_relative:
            level = len(source) - len(source.lstrip("."))
            module = source[level:]
            base = posixpath.dirname(from_path)
            for _ in range(level - 1):
                base = posixpath.dirname(base)
            parts = module.split(".") if module else []
            # `from .pkg import name` may name a submodule
            found = self._first_known(self._python_candidates(base, parts + [imp.name]))
            return found or self._first_known(self._python_candidates(base, parts))

        parts = source.split(".")
        for root in PY_SOURCE_ROOTS:
            base = root.rstrip("/")
            found = self._first_known(self._python_candidates(base, parts + [imp.name]))
            found = found or self._first_known(self._python_candidates(base, parts))
            if found:
                return found
        return None

    def _resolve_js(self, from_path: str, imp: ImportInfo) -> str | None:
        if not imp.source.startswith("."):
            return None
        target = posixpath.normpath(posixpath.join(posixpath.dirname(from_path), imp.source))
        stem, ext = posixpath.splitext(target)
        candidates = [target]
        # ESM sources may name the compiled .js of a .ts file
        if ext in JS_EXTENSIONS:
            candidates.extend(stem + e for e in JS_EXTENSIONS)
        candidates.extend(target + e for e in JS_EXTENSIONS)
        candidates.extend(f"{target}/index{e}" for e in JS_EXTENSIONS)
        return self._first_known(candidates)


class IndexBuilder:
    """Builds the project-wide symbol index and dependency graph."""

    def build_symbol_index(self, asts: dict[str, FileAST]) -> SymbolIndex:
        """Map every declared name to its locations, ordered by path then line."""
        index: SymbolIndex = {}

        def add(name: str, location: SymbolLocation) -> None:
            index.setdefault(name, []).append(location)

        for path in sorted(asts):
            file_ast = asts[path]
            declared: set[str] = set()
            for fn in file_ast.functions:
                add(fn.name, SymbolLocation(path, fn.line_start, "function"))
                declared.add(fn.name)
            for cls in file_ast.classes:
                add(cls.name, SymbolLocation(path, cls.line_start, "class"))
                declared.add(cls.name)
                for method in cls.methods:
                    add(f"{cls.name}.{method.name}", SymbolLocation(path, method.line_start, "method"))
            for var in file_ast.variables:
                add(var.name, SymbolLocation(path, var.line, "variable"))
                declared.add(var.name)
            for exp in file_ast.exports:
                # exports of declarations are already indexed under their own kind
                if exp.name not in declared:
                    add(exp.name, SymbolLocation(path, exp.line, "export"))

        for locations in index.values():
            locations.sort(key=lambda loc: (loc.path, loc.line))
        return index

    def build_deps_graph(self, asts: dict[str, FileAST]) -> DependencyGraph:
        """Resolve every import to a project file and record both directions."""
        resolver = ImportResolver(set(asts))
        imports: dict[str, set[str]] = {path: set() for path in asts}
        imported_by: dict[str, set[str]] = {path: set() for path in asts}

        for path, file_ast in asts.items():
            for imp in file_ast.imports:
                target = resolver.resolve(path, imp)
                if target is None or target == path:
                    continue
                imports[path].add(target)
                imported_by[target].add(path)

        graph = DependencyGraph(
            imports={p: sorted(t) for p, t in imports.items()},
            imported_by={p: sorted(s) for p, s in imported_by.items()},
        )
        edges = sum(len(t) for t in graph.imports.values())
        logger.debug(f"dependency graph: {len(asts)} files, {edges} edges")
        return graph
