"""Per-file metadata derived from a parsed file and the dependency graph."""

import posixpath
import re

from ..types import DependencyGraph, FileAST, FileMeta

HUB_THRESHOLD = 5

ENTRY_POINT_NAMES = {
    "main.py", "__main__.py", "app.py", "cli.py", "manage.py", "wsgi.py", "asgi.py",
    "index.ts", "index.js", "main.ts", "main.js", "server.ts", "server.js", "cli.ts",
}

_PY_BRANCH_RE = re.compile(r"\b(if|elif|for|while|except|with|and|or|case)\b")
_JS_BRANCH_RE = re.compile(r"\b(if|for|while|case|catch)\b|&&|\|\||\?\?|\?(?!\.)")
_MAIN_GUARD_RE = re.compile(r"^if\s+__name__\s*==\s*['\"]__main__['\"]\s*:", re.MULTILINE)


def is_test_path(path: str) -> bool:
    name = posixpath.basename(path)
    parts = path.split("/")[:-1]
    if "tests" in parts or "test" in parts or "__tests__" in parts:
        return True
    if name.startswith("test_") or name.endswith("_test.py") or name == "conftest.py":
        return True
    return bool(re.search(r"\.(test|spec)\.[cm]?[jt]sx?$", name))


def classify_file_type(path: str) -> str:
    name = posixpath.basename(path)
    if is_test_path(path):
        return "test"
    if name.endswith((".d.ts", ".pyi")):
        return "types"
    if re.search(r"(^|[._-])(config|settings)\.", name) or name in ("setup.py", "conftest.py"):
        return "config"
    return "source"


class MetaAnalyzer:
    """Computes FileMeta for parsed files."""

    def analyze(
        self,
        path: str,
        file_ast: FileAST,
        content: str,
        graph: DependencyGraph | None = None,
    ) -> FileMeta:
        """Build the metadata of one file.

        Args:
            path: Project-relative path
            file_ast: Parse result of the file
            content: File content
            graph: Dependency graph of the whole parsed set. Without it the
                   dependency fields stay empty until link() fills them.

        Returns:
            The computed FileMeta
        """
        meta = FileMeta(
            lines=len(content.split("\n")),
            functions=len(file_ast.functions) + sum(len(c.methods) for c in file_ast.classes),
            classes=len(file_ast.classes),
            complexity=self.complexity(path, content),
            is_entry_point=self.is_entry_point(path, content),
            is_test=is_test_path(path),
            file_type=classify_file_type(path),
        )
        if graph is not None:
            self.link(path, meta, graph)
        return meta

    def link(self, path: str, meta: FileMeta, graph: DependencyGraph) -> None:
        """Fill the dependency fields and hub flag of a meta from the graph."""
        meta.dependencies = graph.dependencies_of(path)
        meta.dependents = graph.dependents_of(path)
        meta.is_hub = len(meta.dependents) >= HUB_THRESHOLD

    def complexity(self, path: str, content: str) -> int:
        """Rough cyclomatic score: one plus the number of branch points."""
        pattern = _PY_BRANCH_RE if path.endswith((".py", ".pyi")) else _JS_BRANCH_RE
        return 1 + len(pattern.findall(content))

    def is_entry_point(self, path: str, content: str) -> bool:
        if posixpath.basename(path) in ENTRY_POINT_NAMES:
            return True
        return bool(_MAIN_GUARD_RE.search(content))
