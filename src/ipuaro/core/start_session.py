"""Start or resume a session for a project."""

from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..logging import get_logger
from .session import MAX_INPUT_HISTORY_SIZE, MAX_UNDO_STACK_SIZE, Session

if TYPE_CHECKING:
    from ..storage.base import SessionStorage

logger = get_logger(__name__)


@dataclass
class StartSessionResult:
    session: Session
    is_new: bool


class StartSession:
    """Resolves which session a run works in.

    Order: the session with the given id, then the latest session of the
    project (unless force_new), then a freshly created one.
    """

    def __init__(
        self,
        session_storage: "SessionStorage",
        max_undo_entries: int = MAX_UNDO_STACK_SIZE,
        max_input_history: int = MAX_INPUT_HISTORY_SIZE,
    ):
        self.session_storage = session_storage
        self.max_undo_entries = max_undo_entries
        self.max_input_history = max_input_history

    async def execute(
        self,
        project_name: str,
        session_id: str | None = None,
        force_new: bool = False,
    ) -> StartSessionResult:
        if session_id:
            session = await self.session_storage.load_session(session_id)
            if session is not None:
                await self.session_storage.touch_session(session.id)
                logger.info(f"resumed session {session.id}")
                return StartSessionResult(session=session, is_new=False)
            logger.warning(f"session {session_id} not found, falling back")

        if not force_new:
            latest = await self.session_storage.get_latest_session(project_name)
            if latest is not None:
                await self.session_storage.touch_session(latest.id)
                logger.info(f"resumed latest session {latest.id} for {project_name}")
                return StartSessionResult(session=latest, is_new=False)

        session = Session(
            project_name,
            max_undo_entries=self.max_undo_entries,
            max_input_history=self.max_input_history,
        )
        await self.session_storage.save_session(session)
        logger.info(f"created session {session.id} for {project_name}")
        return StartSessionResult(session=session, is_new=True)
