"""Core agent components.

- ErrorHandler: Turns errors into recovery decisions
- TurnStateMachine: Validated per-turn state
- Session: Conversational state, stats and undo stack
- UndoChange: Reverses the last recorded edit
- StartSession: Resumes or creates a session
"""

from .error_handler import ErrorHandler, ErrorHandlingResult, WrapResult
from .session import ContextState, Session, SessionStats, UndoEntry
from .start_session import StartSession, StartSessionResult
from .state_machine import TRANSITIONS, TurnState, TurnStateMachine
from .undo import UndoChange, UndoResult

__all__ = [
    "ErrorHandler",
    "ErrorHandlingResult",
    "WrapResult",
    "ContextState",
    "Session",
    "SessionStats",
    "UndoEntry",
    "StartSession",
    "StartSessionResult",
    "TRANSITIONS",
    "TurnState",
    "TurnStateMachine",
    "UndoChange",
    "UndoResult",
]
