"""Project file discovery.

Walks a project root and returns the text files worth indexing, honouring a
fixed set of skipped directories, the project's .gitignore and any extra
ignore patterns.
"""

import os
from pathlib import Path

import pathspec

from ..logging import get_logger
from ..types import ScanResult

logger = get_logger(__name__)

DEFAULT_IGNORE_DIRS: set[str] = {
    ".git", "node_modules", "__pycache__", ".venv", "venv", "env",
    ".mypy_cache", ".pytest_cache", ".ruff_cache", ".tox", ".eggs",
    "dist", "build", ".next", ".nuxt", ".cache",
    "coverage", "htmlcov", ".idea", ".vscode", ".ipuaro",
}

SUPPORTED_EXTENSIONS: set[str] = {
    # parsed
    ".py", ".pyi", ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs",
    # scanned and hashed only
    ".json", ".yaml", ".yml", ".toml", ".cfg", ".ini",
    ".md", ".rst", ".txt", ".html", ".css", ".scss", ".sh", ".sql",
}

MAX_FILE_SIZE = 1024 * 1024
BINARY_SNIFF_BYTES = 8000


class FileScanner:
    """Finds indexable files under a project root."""

    def __init__(
        self,
        ignore_patterns: list[str] | None = None,
        extensions: set[str] | None = None,
        max_file_size: int = MAX_FILE_SIZE,
    ):
        self.ignore_patterns = list(ignore_patterns or [])
        self.extensions = extensions or SUPPORTED_EXTENSIONS
        self.max_file_size = max_file_size

    def _load_spec(self, root: Path) -> pathspec.PathSpec:
        lines = list(self.ignore_patterns)
        gitignore = root / ".gitignore"
        if gitignore.is_file():
            with open(gitignore, "r", encoding="utf-8", errors="replace") as f:
                lines.extend(f.read().splitlines())
        return pathspec.PathSpec.from_lines("gitwildmatch", lines)

    def _is_ignored(self, rel_path: str, name: str, is_dir: bool, spec: pathspec.PathSpec) -> bool:
        if is_dir and name in DEFAULT_IGNORE_DIRS:
            return True
        check_path = rel_path + "/" if is_dir else rel_path
        return spec.match_file(check_path)

    def scan(self, root: Path) -> list[ScanResult]:
        """Scan a project root.

        Args:
            root: Project root directory.

        Returns:
            Scan results with POSIX-style relative paths, sorted by path.
        """
        root = Path(root).resolve()
        spec = self._load_spec(root)
        results: list[ScanResult] = []

        for dirpath, dirnames, filenames in os.walk(root):
            rel_dir = Path(dirpath).relative_to(root)

            # prune in place so os.walk does not descend into ignored dirs
            dirnames[:] = sorted(
                d for d in dirnames
                if not self._is_ignored((rel_dir / d).as_posix(), d, True, spec)
            )

            for name in filenames:
                rel_path = (rel_dir / name).as_posix()
                if self._is_ignored(rel_path, name, False, spec):
                    continue
                if Path(name).suffix.lower() not in self.extensions:
                    continue

                full_path = Path(dirpath) / name
                try:
                    stat = full_path.stat()
                except OSError as e:
                    logger.debug(f"cannot stat {rel_path}: {e}")
                    continue
                if stat.st_size > self.max_file_size:
                    logger.debug(f"skipping large file {rel_path} ({stat.st_size} bytes)")
                    continue
                if is_binary(full_path):
                    continue

                results.append(ScanResult(
                    path=rel_path,
                    size=stat.st_size,
                    last_modified=stat.st_mtime * 1000,
                ))

        results.sort(key=lambda r: r.path)
        logger.info(f"scanned {len(results)} files under {root}")
        return results


def is_binary(path: Path) -> bool:
    """Treat a file as binary when its head contains a NUL byte."""
    try:
        with open(path, "rb") as f:
            return b"\0" in f.read(BINARY_SNIFF_BYTES)
    except OSError:
        return True


def read_file_content(path: Path) -> str | None:
    """Read a file as UTF-8 text, returning None when it cannot be read."""
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"failed to read {path}: {e}")
        return None
