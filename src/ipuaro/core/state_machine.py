"""Turn state machine.

A turn moves through an explicit set of states. Every transition is checked
against TRANSITIONS so that an illegal move (for example
awaiting_confirmation -> thinking) fails loudly instead of corrupting the
session.
"""

from enum import Enum
from typing import Callable

from ..exceptions import InvalidTransitionError
from ..logging import get_logger

logger = get_logger(__name__)


class TurnState(str, Enum):
    READY = "ready"
    THINKING = "thinking"
    TOOL_CALL = "tool_call"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    ERROR = "error"


TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.READY: frozenset({TurnState.THINKING}),
    TurnState.THINKING: frozenset({TurnState.TOOL_CALL, TurnState.READY, TurnState.ERROR}),
    TurnState.TOOL_CALL: frozenset({
        TurnState.AWAITING_CONFIRMATION,
        TurnState.THINKING,
        TurnState.READY,
        TurnState.ERROR,
    }),
    TurnState.AWAITING_CONFIRMATION: frozenset({
        TurnState.TOOL_CALL,
        TurnState.READY,
        TurnState.ERROR,
    }),
    TurnState.ERROR: frozenset({TurnState.READY}),
}

StateListener = Callable[[TurnState, TurnState], None]


def can_transition(current: TurnState, target: TurnState) -> bool:
    return target in TRANSITIONS[current]


class TurnStateMachine:
    """Holds the current turn state and validates every move."""

    def __init__(self, on_change: StateListener | None = None):
        self._state = TurnState.READY
        self._history: list[TurnState] = [TurnState.READY]
        self._on_change = on_change

    @property
    def state(self) -> TurnState:
        return self._state

    @property
    def history(self) -> list[TurnState]:
        """All states visited since the last reset, oldest first."""
        return list(self._history)

    @property
    def is_idle(self) -> bool:
        return self._state == TurnState.READY

    def transition(self, target: TurnState) -> None:
        """Move to target.

        Raises:
            InvalidTransitionError: If the move is not in the transition table.
        """
        if not can_transition(self._state, target):
            raise InvalidTransitionError(self._state.value, target.value)

        previous = self._state
        self._state = target
        self._history.append(target)
        logger.debug(f"turn state {previous.value} -> {target.value}")
        if self._on_change is not None:
            self._on_change(previous, target)

    def interrupt(self) -> None:
        """Return to ready from an in-flight state without committing anything."""
        # every non-ready state has a direct edge to ready
        if self._state != TurnState.READY:
            self.transition(TurnState.READY)

    def reset_history(self) -> None:
        self._history = [self._state]
