"""Session state.

A Session is the per-project conversational state: message history, context
usage, statistics, the bounded undo stack and the bounded input history.
"""

import time
import uuid
from collections import deque
from dataclasses import dataclass, field

from ..types import ChatMessage, MessageRole, md5

MAX_UNDO_STACK_SIZE = 10
MAX_INPUT_HISTORY_SIZE = 100


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class UndoEntry:
    """A recorded file mutation that can be reversed.

    Attributes:
        id: Unique identifier of the entry
        timestamp: Edit time in epoch milliseconds
        file_path: Project-relative path of the edited file
        previous_content: File lines before the edit
        new_content: File lines right after the edit
        content_hash: md5 of the file content right after the edit
        description: Human-readable summary of the edit
    """
    id: str
    timestamp: int
    file_path: str
    previous_content: list[str]
    new_content: list[str]
    content_hash: str
    description: str = ""

    @classmethod
    def create(
        cls,
        file_path: str,
        previous_content: list[str],
        new_content: list[str],
        description: str = "",
    ) -> "UndoEntry":
        return cls(
            id=str(uuid.uuid4()),
            timestamp=now_ms(),
            file_path=file_path,
            previous_content=list(previous_content),
            new_content=list(new_content),
            content_hash=md5("\n".join(new_content)),
            description=description,
        )


@dataclass
class ContextState:
    """Context-window usage of a session."""
    files_in_context: list[str] = field(default_factory=list)
    token_usage: float = 0.0
    needs_compression: bool = False


@dataclass
class SessionStats:
    total_tokens: int = 0
    total_time_ms: int = 0
    tool_calls: int = 0
    edits_applied: int = 0
    edits_rejected: int = 0


class Session:
    """Conversational state of one project.

    The undo stack and the input history are bounded deques: pushing past
    capacity evicts the oldest item first.
    """

    def __init__(
        self,
        project_name: str,
        session_id: str | None = None,
        created_at: int | None = None,
        max_undo_entries: int = MAX_UNDO_STACK_SIZE,
        max_input_history: int = MAX_INPUT_HISTORY_SIZE,
    ):
        self.id = session_id or str(uuid.uuid4())
        self.project_name = project_name
        self.created_at = created_at or now_ms()
        self.last_activity_at = self.created_at
        self.history: list[ChatMessage] = []
        self.context = ContextState()
        self.stats = SessionStats()
        self.undo_stack: deque[UndoEntry] = deque(maxlen=max_undo_entries)
        self.input_history: deque[str] = deque(maxlen=max_input_history)

    # ==================== history ====================

    def add_message(self, message: ChatMessage) -> None:
        if not message.timestamp:
            message.timestamp = now_ms()
        self.history.append(message)
        self.touch()

    def add_tool_result(self, tool_call_id: str, name: str, content: str) -> None:
        self.add_message(ChatMessage(
            role=MessageRole.TOOL,
            content=content,
            tool_call_id=tool_call_id,
            name=name,
        ))

    def clear_history(self) -> None:
        self.history = []
        self.context = ContextState()
        self.touch()

    def add_input_to_history(self, text: str) -> None:
        """Record user input, skipping blanks and immediate repeats."""
        text = text.strip()
        if not text:
            return
        if self.input_history and self.input_history[-1] == text:
            return
        self.input_history.append(text)

    # ==================== undo ====================

    def add_undo_entry(self, entry: UndoEntry) -> None:
        self.undo_stack.append(entry)

    def pop_undo_entry(self) -> UndoEntry | None:
        if not self.undo_stack:
            return None
        return self.undo_stack.pop()

    @property
    def undo_depth(self) -> int:
        return len(self.undo_stack)

    # ==================== usage ====================

    def add_usage(self, tokens: int, time_ms: int) -> None:
        self.stats.total_tokens += tokens
        self.stats.total_time_ms += time_ms

    def update_context_usage(self, used_tokens: int, window: int, threshold: float) -> None:
        """Recompute the token-usage ratio and the compression flag."""
        ratio = used_tokens / window if window > 0 else 0.0
        self.context.token_usage = ratio
        self.context.needs_compression = ratio >= threshold

    def add_file_to_context(self, path: str) -> None:
        if path not in self.context.files_in_context:
            self.context.files_in_context.append(path)

    def remove_file_from_context(self, path: str) -> None:
        if path in self.context.files_in_context:
            self.context.files_in_context.remove(path)

    def touch(self) -> None:
        self.last_activity_at = now_ms()

    def __repr__(self) -> str:
        return (
            f"Session(id={self.id!r}, project={self.project_name!r}, "
            f"messages={len(self.history)}, undo={self.undo_depth})"
        )
