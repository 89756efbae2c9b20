"""Versioned persistence schema.

Sessions and undo entries are stored as these pydantic models, independent of
the backend that holds them. Index artifacts (FileData, FileAST, FileMeta,
SymbolIndex, DependencyGraph) are plain dataclasses serialized through
pydantic TypeAdapters.
"""

from typing import Any

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from ..core.session import ContextState, Session, SessionStats, UndoEntry
from ..types import ChatMessage, DependencyGraph, FileAST, FileData, FileMeta, SymbolIndex

SCHEMA_VERSION = 1


class UndoEntryRecord(BaseModel):
    id: str
    timestamp: int
    file_path: str
    previous_content: list[str]
    new_content: list[str]
    content_hash: str
    description: str = ""

    @classmethod
    def from_entry(cls, entry: UndoEntry) -> "UndoEntryRecord":
        return cls(
            id=entry.id,
            timestamp=entry.timestamp,
            file_path=entry.file_path,
            previous_content=list(entry.previous_content),
            new_content=list(entry.new_content),
            content_hash=entry.content_hash,
            description=entry.description,
        )

    def to_entry(self) -> UndoEntry:
        return UndoEntry(
            id=self.id,
            timestamp=self.timestamp,
            file_path=self.file_path,
            previous_content=list(self.previous_content),
            new_content=list(self.new_content),
            content_hash=self.content_hash,
            description=self.description,
        )


class ContextRecord(BaseModel):
    files_in_context: list[str] = Field(default_factory=list)
    token_usage: float = 0.0
    needs_compression: bool = False


class StatsRecord(BaseModel):
    total_tokens: int = 0
    total_time_ms: int = 0
    tool_calls: int = 0
    edits_applied: int = 0
    edits_rejected: int = 0


class SessionRecord(BaseModel):
    """Stored form of a Session, without its undo stack.

    The undo stack is kept as a separate list of UndoEntryRecord so that it
    can be pushed and popped without rewriting the whole session.
    """

    schema_version: int = SCHEMA_VERSION
    id: str
    project_name: str
    created_at: int
    last_activity_at: int
    history: list[dict[str, Any]] = Field(default_factory=list)
    context: ContextRecord = Field(default_factory=ContextRecord)
    stats: StatsRecord = Field(default_factory=StatsRecord)
    input_history: list[str] = Field(default_factory=list)

    @field_validator("schema_version")
    @classmethod
    def check_version(cls, v: int) -> int:
        if v > SCHEMA_VERSION:
            raise ValueError(f"unsupported session schema version {v} (max {SCHEMA_VERSION})")
        return v

    @classmethod
    def from_session(cls, session: Session) -> "SessionRecord":
        return cls(
            id=session.id,
            project_name=session.project_name,
            created_at=session.created_at,
            last_activity_at=session.last_activity_at,
            history=[msg.to_dict() for msg in session.history],
            context=ContextRecord(
                files_in_context=list(session.context.files_in_context),
                token_usage=session.context.token_usage,
                needs_compression=session.context.needs_compression,
            ),
            stats=StatsRecord(**vars(session.stats)),
            input_history=list(session.input_history),
        )

    def to_session(
        self,
        undo_entries: list[UndoEntryRecord] | None = None,
        max_undo_entries: int | None = None,
    ) -> Session:
        kwargs: dict[str, Any] = {}
        if max_undo_entries is not None:
            kwargs["max_undo_entries"] = max_undo_entries
        session = Session(
            project_name=self.project_name,
            session_id=self.id,
            created_at=self.created_at,
            **kwargs,
        )
        session.last_activity_at = self.last_activity_at
        session.history = [ChatMessage.from_dict(m) for m in self.history]
        session.context = ContextState(**self.context.model_dump())
        session.stats = SessionStats(**self.stats.model_dump())
        session.input_history.extend(self.input_history)
        for record in undo_entries or []:
            session.add_undo_entry(record.to_entry())
        return session


class SessionListItem(BaseModel):
    """Summary row returned by SessionStorage.list_sessions."""
    id: str
    project_name: str
    created_at: int
    last_activity_at: int
    message_count: int

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionListItem":
        return cls(
            id=record.id,
            project_name=record.project_name,
            created_at=record.created_at,
            last_activity_at=record.last_activity_at,
            message_count=len(record.history),
        )


# ==================== index artifacts ====================

FILE_DATA_ADAPTER = TypeAdapter(dict[str, FileData])
FILE_AST_ADAPTER = TypeAdapter(dict[str, FileAST])
FILE_META_ADAPTER = TypeAdapter(dict[str, FileMeta])
SYMBOL_INDEX_ADAPTER = TypeAdapter(SymbolIndex)
DEPS_GRAPH_ADAPTER = TypeAdapter(DependencyGraph)
