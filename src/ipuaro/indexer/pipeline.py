"""Project indexing pipeline.

Phases, in order: scan, parse, analyze, build indexes, persist. Nothing is
written to storage until the in-memory pass over the whole project is done.
"""

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from ..exceptions import IpuaroError
from ..logging import get_logger
from ..types import (
    FileAST,
    FileData,
    FileMeta,
    IndexingStats,
    IndexPhase,
    IndexProgress,
    ProgressCallback,
    create_file_data,
)
from .builder import IndexBuilder
from .meta import MetaAnalyzer
from .parser import ASTParser, detect_language
from .scanner import FileScanner, read_file_content

if TYPE_CHECKING:
    from ..storage.base import Storage

logger = get_logger(__name__)


@dataclass
class IndexProjectOptions:
    """Options of one indexing run.

    Attributes:
        additional_ignore: Extra gitignore-style patterns
        on_progress: Callback receiving IndexProgress snapshots
    """
    additional_ignore: list[str] = field(default_factory=list)
    on_progress: ProgressCallback | None = None


class IndexProject:
    """Indexes a project into a Storage."""

    def __init__(
        self,
        storage: "Storage",
        scanner: FileScanner | None = None,
        parser: ASTParser | None = None,
        meta_analyzer: MetaAnalyzer | None = None,
        index_builder: IndexBuilder | None = None,
    ):
        self.storage = storage
        self.scanner = scanner
        self.parser = parser or ASTParser()
        self.meta_analyzer = meta_analyzer or MetaAnalyzer()
        self.index_builder = index_builder or IndexBuilder()

    async def execute(
        self,
        project_root: Path,
        options: IndexProjectOptions | None = None,
    ) -> IndexingStats:
        """Run the full pipeline.

        Args:
            project_root: Root directory of the project.
            options: Ignore patterns and progress callback.

        Returns:
            Counters of the run.

        Raises:
            IpuaroError: If persisting the results fails.
        """
        options = options or IndexProjectOptions()
        root = Path(project_root).resolve()
        start = time.monotonic()
        stats = IndexingStats()

        # ==================== scan ====================
        self._report(options, 0, 0, "", "scanning")
        scanner = self.scanner or FileScanner(ignore_patterns=options.additional_ignore)
        scan_results = scanner.scan(root)
        stats.files_scanned = len(scan_results)

        # ==================== parse ====================
        files: dict[str, FileData] = {}
        asts: dict[str, FileAST] = {}
        contents: dict[str, str] = {}
        total = len(scan_results)

        for current, scan in enumerate(scan_results, start=1):
            self._report(options, current, total, scan.path, "parsing")

            content = read_file_content(root / scan.path)
            if content is None:
                continue

            contents[scan.path] = content
            files[scan.path] = create_file_data(content, scan.size, scan.last_modified)

            language = detect_language(scan.path)
            if language is None:
                continue

            file_ast = self.parser.parse(content, language)
            asts[scan.path] = file_ast
            stats.files_parsed += 1
            if file_ast.parse_error:
                stats.parse_errors += 1
                logger.info(f"parse error in {scan.path}: {file_ast.parse_error_message}")

        # ==================== analyze ====================
        metas: dict[str, FileMeta] = {}
        for current, path in enumerate(asts, start=1):
            self._report(options, current, len(asts), path, "analyzing")
            metas[path] = self.meta_analyzer.analyze(path, asts[path], contents[path])

        # ==================== build indexes ====================
        self._report(options, 1, 1, "Building indexes", "indexing")
        symbol_index = self.index_builder.build_symbol_index(asts)
        deps_graph = self.index_builder.build_deps_graph(asts)
        # hub and dependency fields need the graph of the whole parsed set
        for path, meta in metas.items():
            self.meta_analyzer.link(path, meta, deps_graph)

        # ==================== persist ====================
        try:
            await self.storage.set_indexes(symbol_index, deps_graph)
            for stale in set(await self.storage.get_all_files()) - set(files):
                await self.storage.delete_file(stale)
            await self.storage.set_files(files)
            await self.storage.set_asts(asts)
            await self.storage.set_metas(metas)
            await self.storage.set_project_config("last_indexed", int(time.time() * 1000))
        except IpuaroError:
            raise
        except Exception as e:
            raise IpuaroError.redis(f"Failed to persist index: {e}") from e

        stats.time_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"indexed {root}: {stats.files_scanned} scanned, {stats.files_parsed} parsed, "
            f"{stats.parse_errors} parse errors in {stats.time_ms}ms"
        )
        return stats

    def _report(
        self,
        options: IndexProjectOptions,
        current: int,
        total: int,
        current_file: str,
        phase: IndexPhase,
    ) -> None:
        if options.on_progress:
            options.on_progress(IndexProgress(current, total, current_file, phase))
