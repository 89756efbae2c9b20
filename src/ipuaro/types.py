"""Shared types for ipuaro.

Conversation types are provider-agnostic: every LLM client converts its own
wire format to and from these. Index types describe what the indexing
pipeline produces and what the search/analysis tools read back.
"""

import hashlib
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Literal


class MessageRole(str, Enum):
    """Role of a message in the conversation."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class StopReason(str, Enum):
    """Reason why the model stopped generating."""
    END = "end"
    TOOL_USE = "tool_use"
    LENGTH = "length"
    ERROR = "error"


@dataclass
class ToolCall:
    """A tool call requested by the model."""
    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class ChatMessage:
    """A message in the conversation history.

    Attributes:
        role: The role of the message sender
        content: Text content of the message
        tool_calls: Tool calls requested by the model (assistant only)
        tool_call_id: ID of the call this message answers (tool only)
        name: Name of the tool (tool only)
        timestamp: Creation time in epoch milliseconds
    """
    role: MessageRole
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None
    timestamp: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to a dictionary representation."""
        result: dict[str, Any] = {"role": self.role.value}
        if self.content is not None:
            result["content"] = self.content
        if self.tool_calls:
            result["tool_calls"] = [
                {"id": tc.id, "name": tc.name, "arguments": tc.arguments}
                for tc in self.tool_calls
            ]
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.name is not None:
            result["name"] = self.name
        if self.timestamp:
            result["timestamp"] = self.timestamp
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ChatMessage":
        tool_calls = None
        if data.get("tool_calls"):
            tool_calls = [
                ToolCall(id=tc["id"], name=tc["name"], arguments=tc.get("arguments", {}))
                for tc in data["tool_calls"]
            ]
        return cls(
            role=MessageRole(data["role"]),
            content=data.get("content"),
            tool_calls=tool_calls,
            tool_call_id=data.get("tool_call_id"),
            name=data.get("name"),
            timestamp=data.get("timestamp", 0),
        )


@dataclass
class LLMResponse:
    """Response from an LLM backend.

    Attributes:
        content: Text of the assistant message
        tool_calls: Tool calls requested by the model, empty for a final answer
        tokens: Total tokens consumed by the request
        time_ms: Wall time of the request
        stop_reason: Why the model stopped generating
    """
    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    tokens: int = 0
    time_ms: int = 0
    stop_reason: StopReason = StopReason.END


# ==================== tool types ====================


class ToolCategory(str, Enum):
    """Capability group of a tool, used for listing and filtering only."""
    READ = "read"
    EDIT = "edit"
    SEARCH = "search"
    ANALYSIS = "analysis"
    GIT = "git"
    RUN = "run"


@dataclass
class ToolResult:
    """Outcome of one tool invocation."""
    call_id: str
    success: bool
    data: Any = None
    error: str | None = None
    execution_time_ms: int = 0

    def to_content(self) -> str:
        """Render the result as the text folded into the conversation."""
        if self.success:
            return json.dumps({"success": True, "data": self.data}, default=str, ensure_ascii=False)
        return json.dumps({"success": False, "error": self.error}, ensure_ascii=False)


def success_result(call_id: str, data: Any, execution_time_ms: int) -> ToolResult:
    return ToolResult(call_id=call_id, success=True, data=data, execution_time_ms=execution_time_ms)


def error_result(call_id: str, error: str, execution_time_ms: int) -> ToolResult:
    return ToolResult(call_id=call_id, success=False, error=error, execution_time_ms=execution_time_ms)


# ==================== index types ====================


IndexPhase = Literal["scanning", "parsing", "analyzing", "indexing"]


@dataclass
class IndexProgress:
    """Progress snapshot reported by the indexing pipeline."""
    current: int
    total: int
    current_file: str
    phase: IndexPhase


ProgressCallback = Callable[[IndexProgress], None]


@dataclass
class IndexingStats:
    """Counters produced by one indexing run."""
    files_scanned: int = 0
    files_parsed: int = 0
    parse_errors: int = 0
    time_ms: int = 0


@dataclass
class ScanResult:
    """A file found by the scanner."""
    path: str
    size: int
    last_modified: float


@dataclass
class FileData:
    """Stored content of one project file."""
    lines: list[str]
    hash: str
    size: int
    last_modified: float


def md5(content: str) -> str:
    """Return the md5 hex digest used as the content hash of a file."""
    return hashlib.md5(content.encode("utf-8")).hexdigest()


def create_file_data(content: str, size: int, last_modified: float) -> FileData:
    return FileData(
        lines=content.split("\n"),
        hash=md5(content),
        size=size,
        last_modified=last_modified,
    )


@dataclass
class ImportInfo:
    """An import statement found in a file."""
    name: str
    source: str
    line: int
    is_relative: bool = False
    is_type_only: bool = False


@dataclass
class ExportInfo:
    """A name exported by a file."""
    name: str
    line: int
    kind: str = "variable"


@dataclass
class FunctionInfo:
    """A function or method declaration."""
    name: str
    line_start: int
    line_end: int
    params: list[str] = field(default_factory=list)
    is_async: bool = False
    is_exported: bool = False


@dataclass
class ClassInfo:
    """A class declaration with its methods."""
    name: str
    line_start: int
    line_end: int
    methods: list[FunctionInfo] = field(default_factory=list)
    bases: list[str] = field(default_factory=list)
    is_exported: bool = False


@dataclass
class VariableInfo:
    """A module-level variable or constant."""
    name: str
    line: int
    is_exported: bool = False


@dataclass
class FileAST:
    """Parsed structure of one file.

    A file that failed to parse still gets a FileAST: parse_error is set and
    the collections hold whatever was recovered (usually nothing).
    """
    imports: list[ImportInfo] = field(default_factory=list)
    exports: list[ExportInfo] = field(default_factory=list)
    functions: list[FunctionInfo] = field(default_factory=list)
    classes: list[ClassInfo] = field(default_factory=list)
    variables: list[VariableInfo] = field(default_factory=list)
    parse_error: bool = False
    parse_error_message: str | None = None


@dataclass
class FileMeta:
    """Derived metadata of one parsed file."""
    lines: int = 0
    functions: int = 0
    classes: int = 0
    complexity: int = 0
    dependencies: list[str] = field(default_factory=list)
    dependents: list[str] = field(default_factory=list)
    is_hub: bool = False
    is_entry_point: bool = False
    is_test: bool = False
    file_type: str = "source"


SymbolKind = Literal["function", "class", "method", "variable", "export"]


@dataclass
class SymbolLocation:
    """Where a symbol is defined."""
    path: str
    line: int
    kind: SymbolKind


SymbolIndex = dict[str, list[SymbolLocation]]


@dataclass
class DependencyGraph:
    """File-level dependency edges in both directions."""
    imports: dict[str, list[str]] = field(default_factory=dict)
    imported_by: dict[str, list[str]] = field(default_factory=dict)

    def dependencies_of(self, path: str) -> list[str]:
        return list(self.imports.get(path, []))

    def dependents_of(self, path: str) -> list[str]:
        return list(self.imported_by.get(path, []))
