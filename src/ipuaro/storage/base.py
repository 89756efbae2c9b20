"""Storage interfaces.

Storage holds the project index (files, ASTs, metadata, symbol index,
dependency graph, project config). SessionStorage holds sessions and their
undo stacks. Both are async so that a remote backend can sit behind them.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..core.session import Session, UndoEntry
from ..types import DependencyGraph, FileAST, FileData, FileMeta, SymbolIndex
from .schema import SessionListItem


class Storage(ABC):
    """Abstract project index store."""

    # ==================== files ====================

    @abstractmethod
    async def get_file(self, path: str) -> FileData | None:
        pass

    @abstractmethod
    async def set_file(self, path: str, data: FileData) -> None:
        pass

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        pass

    @abstractmethod
    async def get_all_files(self) -> dict[str, FileData]:
        pass

    async def set_files(self, files: dict[str, FileData]) -> None:
        """Store many files; backends may override to write once."""
        for path, data in files.items():
            await self.set_file(path, data)

    async def get_file_count(self) -> int:
        return len(await self.get_all_files())

    # ==================== ASTs and metadata ====================

    @abstractmethod
    async def get_ast(self, path: str) -> FileAST | None:
        pass

    @abstractmethod
    async def set_ast(self, path: str, ast: FileAST) -> None:
        pass

    @abstractmethod
    async def get_all_asts(self) -> dict[str, FileAST]:
        pass

    async def set_asts(self, asts: dict[str, FileAST]) -> None:
        for path, ast in asts.items():
            await self.set_ast(path, ast)

    @abstractmethod
    async def get_meta(self, path: str) -> FileMeta | None:
        pass

    @abstractmethod
    async def set_meta(self, path: str, meta: FileMeta) -> None:
        pass

    @abstractmethod
    async def get_all_metas(self) -> dict[str, FileMeta]:
        pass

    async def set_metas(self, metas: dict[str, FileMeta]) -> None:
        for path, meta in metas.items():
            await self.set_meta(path, meta)

    # ==================== indexes ====================

    @abstractmethod
    async def get_symbol_index(self) -> SymbolIndex:
        pass

    @abstractmethod
    async def get_deps_graph(self) -> DependencyGraph:
        pass

    @abstractmethod
    async def set_indexes(self, symbols: SymbolIndex, deps: DependencyGraph) -> None:
        """Replace the symbol index and the dependency graph as one unit."""

    # ==================== config ====================

    @abstractmethod
    async def get_project_config(self, key: str) -> Any:
        pass

    @abstractmethod
    async def set_project_config(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass


class SessionStorage(ABC):
    """Abstract session store.

    Undo entries live in a per-session list next to the session itself;
    load_session returns the session with that list as its undo stack.
    """

    @abstractmethod
    async def save_session(self, session: Session) -> None:
        pass

    @abstractmethod
    async def load_session(self, session_id: str) -> Session | None:
        pass

    @abstractmethod
    async def delete_session(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def list_sessions(self, project_name: str | None = None) -> list[SessionListItem]:
        """List sessions, most recently active first."""

    async def get_latest_session(self, project_name: str) -> Session | None:
        sessions = await self.list_sessions(project_name)
        if not sessions:
            return None
        return await self.load_session(sessions[0].id)

    @abstractmethod
    async def session_exists(self, session_id: str) -> bool:
        pass

    @abstractmethod
    async def push_undo_entry(self, session_id: str, entry: UndoEntry) -> None:
        """Push an entry, evicting the oldest one past capacity."""

    @abstractmethod
    async def pop_undo_entry(self, session_id: str) -> UndoEntry | None:
        pass

    @abstractmethod
    async def get_undo_stack(self, session_id: str) -> list[UndoEntry]:
        """Return the undo entries, oldest first."""

    @abstractmethod
    async def touch_session(self, session_id: str) -> None:
        pass

    @abstractmethod
    async def clear_all_sessions(self) -> None:
        pass
