"""JSON-directory storage backends.

Each project gets a directory holding one JSON document per artifact
(files.json, asts.json, metas.json, indexes.json, config.json). Sessions live
under <data_dir>/sessions, one document per session plus one per undo stack.
Every document is written to a temporary file and moved into place with
os.replace, so a reader sees either the old or the new document.
"""

import hashlib
import json
import os
from pathlib import Path
from typing import Any, Callable, TypeVar

from pydantic import ValidationError

from ..core.session import MAX_UNDO_STACK_SIZE, Session, UndoEntry, now_ms
from ..exceptions import IpuaroError
from ..logging import get_logger
from ..types import DependencyGraph, FileAST, FileData, FileMeta, SymbolIndex
from .base import SessionStorage, Storage
from .schema import (
    DEPS_GRAPH_ADAPTER,
    FILE_AST_ADAPTER,
    FILE_DATA_ADAPTER,
    FILE_META_ADAPTER,
    SYMBOL_INDEX_ADAPTER,
    SessionListItem,
    SessionRecord,
    UndoEntryRecord,
)

logger = get_logger(__name__)

T = TypeVar("T")


def project_key(project_root: Path) -> str:
    """Directory name for a project: its name plus a short hash of its path."""
    resolved = project_root.resolve()
    digest = hashlib.sha1(str(resolved).encode("utf-8")).hexdigest()[:8]
    return f"{resolved.name}-{digest}"


def _read_json(path: Path, default: Any) -> Any:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return default
    except (OSError, json.JSONDecodeError) as e:
        raise IpuaroError.redis(f"Failed to read {path.name}: {e}", {"path": str(path)}) from e


def _validate(path: Path, validate: Callable[[Any], T], raw: Any) -> T:
    try:
        return validate(raw)
    except ValidationError as e:
        raise IpuaroError.redis(
            f"Invalid document {path.name}: {e.errors()[0]['msg']}", {"path": str(path)}
        ) from e


def _write_json(path: Path, data: Any) -> None:
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, path)
    except OSError as e:
        raise IpuaroError.redis(f"Failed to write {path.name}: {e}", {"path": str(path)}) from e


class FileStorage(Storage):
    """Project index persisted as JSON documents in a directory.

    Documents are loaded lazily and cached; every mutation rewrites the
    affected document.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self._files: dict[str, FileData] | None = None
        self._asts: dict[str, FileAST] | None = None
        self._metas: dict[str, FileMeta] | None = None
        self._config: dict[str, Any] | None = None

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    # ==================== lazy documents ====================

    def _load_files(self) -> dict[str, FileData]:
        if self._files is None:
            path = self._path("files")
            self._files = _validate(path, FILE_DATA_ADAPTER.validate_python, _read_json(path, {}))
        return self._files

    def _load_asts(self) -> dict[str, FileAST]:
        if self._asts is None:
            path = self._path("asts")
            self._asts = _validate(path, FILE_AST_ADAPTER.validate_python, _read_json(path, {}))
        return self._asts

    def _load_metas(self) -> dict[str, FileMeta]:
        if self._metas is None:
            path = self._path("metas")
            self._metas = _validate(path, FILE_META_ADAPTER.validate_python, _read_json(path, {}))
        return self._metas

    def _load_config(self) -> dict[str, Any]:
        if self._config is None:
            self._config = _read_json(self._path("config"), {})
        return self._config

    def _flush_files(self) -> None:
        _write_json(self._path("files"), FILE_DATA_ADAPTER.dump_python(self._load_files(), mode="json"))

    def _flush_asts(self) -> None:
        _write_json(self._path("asts"), FILE_AST_ADAPTER.dump_python(self._load_asts(), mode="json"))

    def _flush_metas(self) -> None:
        _write_json(self._path("metas"), FILE_META_ADAPTER.dump_python(self._load_metas(), mode="json"))

    # ==================== files ====================

    async def get_file(self, path: str) -> FileData | None:
        return self._load_files().get(path)

    async def set_file(self, path: str, data: FileData) -> None:
        self._load_files()[path] = data
        self._flush_files()

    async def set_files(self, files: dict[str, FileData]) -> None:
        self._load_files().update(files)
        self._flush_files()

    async def delete_file(self, path: str) -> None:
        self._load_files().pop(path, None)
        self._load_asts().pop(path, None)
        self._load_metas().pop(path, None)
        self._flush_files()
        self._flush_asts()
        self._flush_metas()

    async def get_all_files(self) -> dict[str, FileData]:
        return dict(self._load_files())

    # ==================== ASTs and metadata ====================

    async def get_ast(self, path: str) -> FileAST | None:
        return self._load_asts().get(path)

    async def set_ast(self, path: str, ast: FileAST) -> None:
        self._load_asts()[path] = ast
        self._flush_asts()

    async def set_asts(self, asts: dict[str, FileAST]) -> None:
        self._load_asts().update(asts)
        self._flush_asts()

    async def get_all_asts(self) -> dict[str, FileAST]:
        return dict(self._load_asts())

    async def get_meta(self, path: str) -> FileMeta | None:
        return self._load_metas().get(path)

    async def set_meta(self, path: str, meta: FileMeta) -> None:
        self._load_metas()[path] = meta
        self._flush_metas()

    async def set_metas(self, metas: dict[str, FileMeta]) -> None:
        self._load_metas().update(metas)
        self._flush_metas()

    async def get_all_metas(self) -> dict[str, FileMeta]:
        return dict(self._load_metas())

    # ==================== indexes ====================

    def _load_indexes(self) -> tuple[SymbolIndex, DependencyGraph]:
        path = self._path("indexes")
        raw = _read_json(path, {})
        symbols = _validate(path, SYMBOL_INDEX_ADAPTER.validate_python, raw.get("symbols", {}))
        deps = _validate(path, DEPS_GRAPH_ADAPTER.validate_python, raw.get("deps", {}))
        return symbols, deps

    async def get_symbol_index(self) -> SymbolIndex:
        return self._load_indexes()[0]

    async def get_deps_graph(self) -> DependencyGraph:
        return self._load_indexes()[1]

    async def set_indexes(self, symbols: SymbolIndex, deps: DependencyGraph) -> None:
        # both indexes share one document so they are replaced together
        _write_json(self._path("indexes"), {
            "symbols": SYMBOL_INDEX_ADAPTER.dump_python(symbols, mode="json"),
            "deps": DEPS_GRAPH_ADAPTER.dump_python(deps, mode="json"),
        })

    # ==================== config ====================

    async def get_project_config(self, key: str) -> Any:
        return self._load_config().get(key)

    async def set_project_config(self, key: str, value: Any) -> None:
        self._load_config()[key] = value
        _write_json(self._path("config"), self._config)

    async def clear(self) -> None:
        for name in ("files", "asts", "metas", "indexes", "config"):
            path = self._path(name)
            if path.exists():
                path.unlink()
        self._files = self._asts = self._metas = self._config = None


class FileSessionStorage(SessionStorage):
    """Sessions persisted as JSON documents in a directory."""

    def __init__(self, directory: Path, max_undo_entries: int = MAX_UNDO_STACK_SIZE):
        self.directory = Path(directory)
        self.max_undo_entries = max_undo_entries

    def _session_path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.json"

    def _undo_path(self, session_id: str) -> Path:
        return self.directory / f"{session_id}.undo.json"

    def _read_record(self, path: Path) -> SessionRecord | None:
        raw = _read_json(path, None)
        if raw is None:
            return None
        return _validate(path, SessionRecord.model_validate, raw)

    def _read_undo(self, session_id: str) -> list[UndoEntryRecord]:
        path = self._undo_path(session_id)
        raw = _read_json(path, [])
        return [_validate(path, UndoEntryRecord.model_validate, item) for item in raw]

    def _write_undo(self, session_id: str, records: list[UndoEntryRecord]) -> None:
        _write_json(self._undo_path(session_id), [r.model_dump() for r in records])

    async def save_session(self, session: Session) -> None:
        record = SessionRecord.from_session(session)
        _write_json(self._session_path(session.id), record.model_dump(mode="json"))
        logger.debug(f"saved session {session.id}")

    async def load_session(self, session_id: str) -> Session | None:
        record = self._read_record(self._session_path(session_id))
        if record is None:
            return None
        return record.to_session(self._read_undo(session_id), self.max_undo_entries)

    async def delete_session(self, session_id: str) -> None:
        for path in (self._session_path(session_id), self._undo_path(session_id)):
            if path.exists():
                path.unlink()

    async def list_sessions(self, project_name: str | None = None) -> list[SessionListItem]:
        if not self.directory.exists():
            return []
        items = []
        for path in self.directory.glob("*.json"):
            if path.name.endswith(".undo.json"):
                continue
            record = self._read_record(path)
            if record is None:
                continue
            if project_name is None or record.project_name == project_name:
                items.append(SessionListItem.from_record(record))
        return sorted(items, key=lambda i: i.last_activity_at, reverse=True)

    async def session_exists(self, session_id: str) -> bool:
        return self._session_path(session_id).exists()

    async def push_undo_entry(self, session_id: str, entry: UndoEntry) -> None:
        records = self._read_undo(session_id)
        records.append(UndoEntryRecord.from_entry(entry))
        self._write_undo(session_id, records[-self.max_undo_entries:])

    async def pop_undo_entry(self, session_id: str) -> UndoEntry | None:
        records = self._read_undo(session_id)
        if not records:
            return None
        record = records.pop()
        self._write_undo(session_id, records)
        return record.to_entry()

    async def get_undo_stack(self, session_id: str) -> list[UndoEntry]:
        return [r.to_entry() for r in self._read_undo(session_id)]

    async def touch_session(self, session_id: str) -> None:
        path = self._session_path(session_id)
        record = self._read_record(path)
        if record is None:
            return
        record.last_activity_at = now_ms()
        _write_json(path, record.model_dump(mode="json"))

    async def clear_all_sessions(self) -> None:
        if not self.directory.exists():
            return
        for path in self.directory.glob("*.json"):
            path.unlink()
