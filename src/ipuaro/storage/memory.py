"""In-process storage backends, used by tests and one-shot runs."""

from typing import Any

from ..core.session import MAX_UNDO_STACK_SIZE, Session, UndoEntry, now_ms
from ..types import DependencyGraph, FileAST, FileData, FileMeta, SymbolIndex
from .base import SessionStorage, Storage
from .schema import SessionListItem, SessionRecord, UndoEntryRecord


class InMemoryStorage(Storage):
    def __init__(self):
        self._files: dict[str, FileData] = {}
        self._asts: dict[str, FileAST] = {}
        self._metas: dict[str, FileMeta] = {}
        self._symbols: SymbolIndex = {}
        self._deps = DependencyGraph()
        self._config: dict[str, Any] = {}

    async def get_file(self, path: str) -> FileData | None:
        return self._files.get(path)

    async def set_file(self, path: str, data: FileData) -> None:
        self._files[path] = data

    async def delete_file(self, path: str) -> None:
        self._files.pop(path, None)
        self._asts.pop(path, None)
        self._metas.pop(path, None)

    async def get_all_files(self) -> dict[str, FileData]:
        return dict(self._files)

    async def get_ast(self, path: str) -> FileAST | None:
        return self._asts.get(path)

    async def set_ast(self, path: str, ast: FileAST) -> None:
        self._asts[path] = ast

    async def get_all_asts(self) -> dict[str, FileAST]:
        return dict(self._asts)

    async def get_meta(self, path: str) -> FileMeta | None:
        return self._metas.get(path)

    async def set_meta(self, path: str, meta: FileMeta) -> None:
        self._metas[path] = meta

    async def get_all_metas(self) -> dict[str, FileMeta]:
        return dict(self._metas)

    async def get_symbol_index(self) -> SymbolIndex:
        return dict(self._symbols)

    async def get_deps_graph(self) -> DependencyGraph:
        return self._deps

    async def set_indexes(self, symbols: SymbolIndex, deps: DependencyGraph) -> None:
        self._symbols, self._deps = dict(symbols), deps

    async def get_project_config(self, key: str) -> Any:
        return self._config.get(key)

    async def set_project_config(self, key: str, value: Any) -> None:
        self._config[key] = value

    async def clear(self) -> None:
        self._files.clear()
        self._asts.clear()
        self._metas.clear()
        self._symbols = {}
        self._deps = DependencyGraph()
        self._config.clear()


class InMemorySessionStorage(SessionStorage):
    """Session store keeping serialized records in dicts."""

    def __init__(self, max_undo_entries: int = MAX_UNDO_STACK_SIZE):
        self.max_undo_entries = max_undo_entries
        self._sessions: dict[str, SessionRecord] = {}
        self._undo: dict[str, list[UndoEntryRecord]] = {}

    async def save_session(self, session: Session) -> None:
        self._sessions[session.id] = SessionRecord.from_session(session)
        self._undo.setdefault(session.id, [])

    async def load_session(self, session_id: str) -> Session | None:
        record = self._sessions.get(session_id)
        if record is None:
            return None
        return record.to_session(self._undo.get(session_id, []), self.max_undo_entries)

    async def delete_session(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)
        self._undo.pop(session_id, None)

    async def list_sessions(self, project_name: str | None = None) -> list[SessionListItem]:
        items = [
            SessionListItem.from_record(r)
            for r in self._sessions.values()
            if project_name is None or r.project_name == project_name
        ]
        return sorted(items, key=lambda i: i.last_activity_at, reverse=True)

    async def session_exists(self, session_id: str) -> bool:
        return session_id in self._sessions

    async def push_undo_entry(self, session_id: str, entry: UndoEntry) -> None:
        stack = self._undo.setdefault(session_id, [])
        stack.append(UndoEntryRecord.from_entry(entry))
        while len(stack) > self.max_undo_entries:
            stack.pop(0)

    async def pop_undo_entry(self, session_id: str) -> UndoEntry | None:
        stack = self._undo.get(session_id)
        if not stack:
            return None
        return stack.pop().to_entry()

    async def get_undo_stack(self, session_id: str) -> list[UndoEntry]:
        return [r.to_entry() for r in self._undo.get(session_id, [])]

    async def touch_session(self, session_id: str) -> None:
        record = self._sessions.get(session_id)
        if record is not None:
            record.last_activity_at = now_ms()

    async def clear_all_sessions(self) -> None:
        self._sessions.clear()
        self._undo.clear()
