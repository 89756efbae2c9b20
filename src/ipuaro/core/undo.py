"""Undo of recorded file edits.

An undo is applied only if the file still holds exactly what the edit wrote:
the md5 of the current content must equal the hash captured at edit time.
A failed undo always puts the popped entry back.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ..logging import get_logger
from ..types import create_file_data, md5
from .session import Session, UndoEntry

if TYPE_CHECKING:
    from ..storage.base import SessionStorage, Storage

logger = get_logger(__name__)

NO_CHANGES_MESSAGE = "No changes to undo"
CONFLICT_MESSAGE = "File has been modified since the change was made"


@dataclass
class UndoResult:
    success: bool
    entry: UndoEntry | None = None
    error: str | None = None


class UndoChange:
    """Reverses the most recent recorded edit of a session."""

    def __init__(
        self,
        session_storage: "SessionStorage",
        storage: "Storage",
        project_root: Path,
    ):
        self.session_storage = session_storage
        self.storage = storage
        self.project_root = Path(project_root)

    def _absolute(self, file_path: str) -> Path:
        path = Path(file_path)
        return path if path.is_absolute() else self.project_root / path

    async def execute(self, session: Session) -> UndoResult:
        """Undo the top entry of the session's undo stack.

        Args:
            session: The session whose last edit is reversed.

        Returns:
            UndoResult with the entry on success, or the failure message.
        """
        entry = await self.session_storage.pop_undo_entry(session.id)
        if entry is None:
            return UndoResult(success=False, error=NO_CHANGES_MESSAGE)

        path = self._absolute(entry.file_path)
        try:
            current = self._read_lines(path)
            if md5("\n".join(current)) != entry.content_hash:
                await self.session_storage.push_undo_entry(session.id, entry)
                logger.info(f"undo conflict on {entry.file_path}")
                return UndoResult(success=False, entry=entry, error=CONFLICT_MESSAGE)

            content = "\n".join(entry.previous_content)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

            stat = path.stat()
            await self.storage.set_file(
                entry.file_path,
                create_file_data(content, stat.st_size, stat.st_mtime * 1000),
            )

            session.pop_undo_entry()
            session.stats.edits_applied = max(0, session.stats.edits_applied - 1)
            session.touch()
            logger.info(f"undid change to {entry.file_path}")
            return UndoResult(success=True, entry=entry)
        except Exception as e:
            await self.session_storage.push_undo_entry(session.id, entry)
            logger.error(f"undo of {entry.file_path} failed: {e}")
            return UndoResult(success=False, entry=entry, error=f"Failed to undo: {e}")

    def _read_lines(self, path: Path) -> list[str]:
        try:
            return path.read_text(encoding="utf-8").split("\n")
        except FileNotFoundError:
            return []

    async def can_undo(self, session: Session) -> bool:
        return len(await self.session_storage.get_undo_stack(session.id)) > 0

    async def peek_undo_entry(self, session: Session) -> UndoEntry | None:
        stack = await self.session_storage.get_undo_stack(session.id)
        return stack[-1] if stack else None
