"""Main agent implementation.

The CodingAgent runs one conversational turn at a time:
1. Send the session history to the LLM
2. If the LLM requests tool calls, execute them through the registry
3. Fold each result into the history
4. Repeat until the LLM produces a final answer

Every step moves the TurnStateMachine, so an illegal sequence fails loudly.
Tools that need confirmation suspend the turn in awaiting_confirmation until
the user answers; a denial ends the turn.
"""

import asyncio
import weakref
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable

from .clients.base import LLMClient
from .config import Settings, get_settings
from .core import ErrorHandler, Session, TurnState, TurnStateMachine, UndoEntry
from .core.state_machine import StateListener
from .exceptions import ErrorType, IpuaroError, TurnInProgressError, to_ipuaro_error
from .logging import get_logger
from .prompts import build_system_prompt
from .tools import UNDO_KEY, ToolContext, ToolRegistry
from .types import ChatMessage, LLMResponse, MessageRole, ToolCall, ToolCategory, ToolResult, error_result

if TYPE_CHECKING:
    from .storage.base import SessionStorage, Storage

logger = get_logger(__name__)

ConfirmCallback = Callable[[str], Awaitable[bool]]

CANCELLED_MESSAGE = "Cancelled: a previous operation in this turn was rejected by the user"
INTERRUPTED_MESSAGE = "Interrupted by user"

# one writer per session id, shared by every agent built on that session
_SESSION_LOCKS: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _session_lock(session_id: str) -> asyncio.Lock:
    lock = _SESSION_LOCKS.get(session_id)
    if lock is None:
        lock = asyncio.Lock()
        _SESSION_LOCKS[session_id] = lock
    return lock


@dataclass
class TurnResult:
    """Outcome of one turn.

    Attributes:
        content: Final answer of the model, empty when the turn did not finish
        error: The error that ended the turn, if any
        tool_calls: Number of tool calls executed during the turn
        iterations: Number of LLM round-trips
        cancelled: The user rejected a confirmation
        interrupted: The turn was interrupted
        states: Turn states visited, starting from ready
    """
    content: str = ""
    error: IpuaroError | None = None
    tool_calls: int = 0
    iterations: int = 0
    cancelled: bool = False
    interrupted: bool = False
    states: list[TurnState] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.error is None and not self.cancelled and not self.interrupted


class CodingAgent:
    """Agent that coordinates between the LLM, the tools and the session."""

    def __init__(
        self,
        llm: LLMClient,
        registry: ToolRegistry,
        session: Session,
        storage: "Storage",
        project_root: str | Path,
        session_storage: "SessionStorage | None" = None,
        settings: Settings | None = None,
        error_handler: ErrorHandler | None = None,
        on_confirm: ConfirmCallback | None = None,
        on_state_change: StateListener | None = None,
        on_progress: Callable[[str], None] | None = None,
        system_prompt: str | None = None,
    ):
        """Initialize the agent.

        Args:
            llm: The LLM client to use
            registry: Tools available to the model
            session: Session the turns are recorded in
            storage: Project index store handed to the tools
            project_root: Root of the project
            session_storage: Where the session and its undo entries are saved
            settings: Settings, defaults to get_settings()
            error_handler: Retry policy for LLM calls
            on_confirm: Async callback asked to approve a tool action;
                without one every confirmation is denied
            on_state_change: Called with (previous, new) on every turn state move
            on_progress: Receives progress messages from tools
            system_prompt: Overrides the default system prompt
        """
        self.llm = llm
        self.registry = registry
        self.session = session
        self.storage = storage
        self.project_root = Path(project_root).resolve()
        self.session_storage = session_storage
        self.settings = settings or get_settings()
        self.error_handler = error_handler or ErrorHandler(
            max_retries=self.settings.max_retries,
            auto_skip_parse_errors=self.settings.auto_skip_parse_errors,
            auto_retry_llm_errors=self.settings.auto_retry_llm_errors,
        )
        self.on_confirm = on_confirm
        self.state = TurnStateMachine(on_change=on_state_change)
        self.system_prompt = system_prompt or build_system_prompt(session.project_name)

        self._context = ToolContext(
            project_root=self.project_root,
            storage=storage,
            request_confirmation=self._request_confirmation,
            on_progress=on_progress,
        )
        self._lock = _session_lock(session.id)
        self._task: asyncio.Task | None = None
        self._interrupted = False
        self._denied = False
        self._pending_calls: list[ToolCall] = []

    @property
    def llm_retry_key(self) -> str:
        return f"llm:{self.session.id}"

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    # ==================== turn ====================

    async def run_turn(self, user_input: str) -> TurnResult:
        """Run a conversation turn with the given user input.

        Args:
            user_input: The user's message

        Returns:
            TurnResult with the final answer or what ended the turn

        Raises:
            TurnInProgressError: If another turn is running on this session
        """
        if self._lock.locked():
            raise TurnInProgressError(self.session.id)

        async with self._lock:
            self._interrupted = False
            self.state.reset_history()
            self._task = asyncio.create_task(self._run_turn(user_input))
            try:
                result = await self._task
            except asyncio.CancelledError:
                if not self._interrupted:
                    raise
                result = self._finish_interrupted()
            finally:
                self._task = None
                await self._save_session()

            result.states = self.state.history
            return result

    def interrupt(self) -> None:
        """Cancel the in-flight turn and abort the LLM request."""
        if self._task is None or self._task.done():
            return
        logger.info(f"interrupting turn of session {self.session.id}")
        self._interrupted = True
        self.llm.abort()
        self._task.cancel()

    async def _run_turn(self, user_input: str) -> TurnResult:
        try:
            return await self._loop(user_input)
        except IpuaroError as e:
            return self._fail(e)
        except Exception as e:
            logger.exception("turn failed")
            return self._fail(to_ipuaro_error(e, ErrorType.UNKNOWN))

    async def _loop(self, user_input: str) -> TurnResult:
        session = self.session
        session.add_input_to_history(user_input)
        session.add_message(ChatMessage(role=MessageRole.USER, content=user_input))
        self.error_handler.reset_retries(self.llm_retry_key)

        result = TurnResult()
        self.state.transition(TurnState.THINKING)

        for _ in range(self.settings.max_tool_iterations):
            result.iterations += 1
            response = await self.error_handler.with_retry(
                self._query, ErrorType.LLM, self.llm_retry_key
            )
            self._record_usage(response)

            if not response.tool_calls:
                session.add_message(ChatMessage(role=MessageRole.ASSISTANT, content=response.content))
                self.state.transition(TurnState.READY)
                result.content = response.content
                return result

            self.state.transition(TurnState.TOOL_CALL)
            session.add_message(ChatMessage(
                role=MessageRole.ASSISTANT,
                content=response.content or None,
                tool_calls=response.tool_calls,
            ))
            executed, denied = await self._run_tool_calls(response.tool_calls)
            result.tool_calls += executed
            if denied:
                self.state.transition(TurnState.READY)
                result.cancelled = True
                return result

            self.state.transition(TurnState.THINKING)

        raise IpuaroError(
            ErrorType.LLM,
            f"Stopped after {self.settings.max_tool_iterations} tool iterations without a final answer",
            suggestion="Break the request into smaller steps",
        )

    async def _query(self) -> LLMResponse:
        messages = [ChatMessage(role=MessageRole.SYSTEM, content=self.system_prompt), *self.session.history]
        return await self.llm.chat(messages, self.registry.get_tool_definitions() or None)

    def _record_usage(self, response: LLMResponse) -> None:
        self.session.add_usage(response.tokens, response.time_ms)
        used = response.tokens
        if not used:
            text = self.system_prompt + "".join(m.content or "" for m in self.session.history)
            used = self.llm.count_tokens(text)
        self.session.update_context_usage(
            used,
            self.settings.context_window,
            self.settings.compression_threshold,
        )
        if self.session.context.needs_compression:
            logger.warning(
                f"context usage at {self.session.context.token_usage:.0%}, consider /clear"
            )

    def _fail(self, error: IpuaroError) -> TurnResult:
        logger.error(f"turn failed: {error.to_display_string()}")
        if self.state.state != TurnState.READY:
            if self.state.state != TurnState.ERROR:
                self.state.transition(TurnState.ERROR)
            self.state.transition(TurnState.READY)
        return TurnResult(error=error)

    def _finish_interrupted(self) -> TurnResult:
        for call in self._pending_calls:
            self.session.add_tool_result(call.id, call.name, self._error_content(call, INTERRUPTED_MESSAGE))
        self._pending_calls = []
        self.state.interrupt()
        return TurnResult(interrupted=True)

    # ==================== tools ====================

    async def _run_tool_calls(self, calls: list[ToolCall]) -> tuple[int, bool]:
        """Execute calls in order, folding each result into the history.

        Returns:
            Number of executed calls and whether the user denied a confirmation
        """
        session = self.session
        for i, call in enumerate(calls):
            self._pending_calls = calls[i:]
            self._denied = False
            logger.info(f"executing tool: {call.name}")
            result = await self.registry.execute(call.name, call.arguments, self._context)
            session.stats.tool_calls += 1

            if self._denied:
                tool = self.registry.get(call.name)
                if tool is not None and tool.category == ToolCategory.EDIT:
                    session.stats.edits_rejected += 1
                session.add_tool_result(call.id, call.name, result.to_content())
                for rest in calls[i + 1:]:
                    session.add_tool_result(rest.id, rest.name, self._error_content(rest, CANCELLED_MESSAGE))
                self._pending_calls = []
                return i + 1, True

            await self._record_undo(result)
            self._track_context_file(call, result)
            session.add_tool_result(call.id, call.name, result.to_content())

        self._pending_calls = []
        return len(calls), False

    async def _request_confirmation(self, message: str) -> bool:
        self.state.transition(TurnState.AWAITING_CONFIRMATION)
        approved = bool(self.on_confirm and await self.on_confirm(message))
        if approved:
            self.state.transition(TurnState.TOOL_CALL)
        else:
            # stays in awaiting_confirmation; the turn loop moves on to ready
            self._denied = True
        return approved

    async def _record_undo(self, result: ToolResult) -> None:
        if not result.success or not isinstance(result.data, dict) or UNDO_KEY not in result.data:
            return
        payload = result.data.pop(UNDO_KEY)
        entry = UndoEntry.create(
            payload["file_path"],
            payload["previous_content"],
            payload["new_content"],
            payload.get("description", ""),
        )
        self.session.add_undo_entry(entry)
        if self.session_storage is not None:
            await self.session_storage.push_undo_entry(self.session.id, entry)
        self.session.stats.edits_applied += 1

    def _track_context_file(self, call: ToolCall, result: ToolResult) -> None:
        if result.success and isinstance(result.data, dict) and "path" in result.data:
            if result.data.get("deleted"):
                self.session.remove_file_from_context(result.data["path"])
                return
            tool = self.registry.get(call.name)
            if tool is not None and tool.category in (ToolCategory.READ, ToolCategory.EDIT):
                path = result.data["path"]
                if path and path != ".":
                    self.session.add_file_to_context(path)

    def _error_content(self, call: ToolCall, message: str) -> str:
        return error_result(f"{call.name}-cancelled", message, 0).to_content()

    # ==================== session ====================

    async def _save_session(self) -> None:
        if self.session_storage is None:
            return
        try:
            await self.session_storage.save_session(self.session)
        except IpuaroError as e:
            logger.error(f"failed to save session {self.session.id}: {e.message}")

    def clear_history(self) -> None:
        """Clear conversation history and context usage."""
        self.session.clear_history()
