"""Error taxonomy for ipuaro.

Every failure that crosses an orchestration boundary (tool execution, an
indexing phase, undo, storage, the LLM call) is converted into an IpuaroError.
The error carries its kind together with the recovery options the
ErrorHandler is allowed to pick from.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorType(str, Enum):
    """Kind of failure."""
    REDIS = "redis"
    PARSE = "parse"
    LLM = "llm"
    FILE = "file"
    COMMAND = "command"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


class ErrorOption(str, Enum):
    """Recovery option for an error."""
    RETRY = "retry"
    SKIP = "skip"
    ABORT = "abort"
    CONFIRM = "confirm"
    REGENERATE = "regenerate"


@dataclass(frozen=True)
class ErrorMeta:
    """Behaviour of one error kind."""
    recoverable: bool
    options: tuple[ErrorOption, ...]
    default_option: ErrorOption


# recovery matrix: every kind keeps abort as an option
ERROR_MATRIX: dict[ErrorType, ErrorMeta] = {
    ErrorType.REDIS: ErrorMeta(
        recoverable=False,
        options=(ErrorOption.RETRY, ErrorOption.ABORT),
        default_option=ErrorOption.ABORT,
    ),
    ErrorType.PARSE: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.SKIP, ErrorOption.ABORT),
        default_option=ErrorOption.SKIP,
    ),
    ErrorType.LLM: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.RETRY, ErrorOption.SKIP, ErrorOption.ABORT),
        default_option=ErrorOption.RETRY,
    ),
    ErrorType.FILE: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.SKIP, ErrorOption.ABORT),
        default_option=ErrorOption.SKIP,
    ),
    ErrorType.COMMAND: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.CONFIRM, ErrorOption.SKIP, ErrorOption.ABORT),
        default_option=ErrorOption.CONFIRM,
    ),
    ErrorType.CONFLICT: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.SKIP, ErrorOption.REGENERATE, ErrorOption.ABORT),
        default_option=ErrorOption.SKIP,
    ),
    ErrorType.VALIDATION: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.SKIP, ErrorOption.ABORT),
        default_option=ErrorOption.SKIP,
    ),
    ErrorType.TIMEOUT: ErrorMeta(
        recoverable=True,
        options=(ErrorOption.RETRY, ErrorOption.SKIP, ErrorOption.ABORT),
        default_option=ErrorOption.RETRY,
    ),
    ErrorType.UNKNOWN: ErrorMeta(
        recoverable=False,
        options=(ErrorOption.ABORT,),
        default_option=ErrorOption.ABORT,
    ),
}


class IpuaroError(Exception):
    """Base exception for all ipuaro errors.

    Attributes:
        type: The taxonomy kind
        recoverable: Whether the current turn/run may continue
        options: Ordered recovery options for this kind
        default_option: Option picked when nobody chooses
        suggestion: Optional remediation hint shown to the user
        context: Optional structured details (file path, command, ...)
    """

    def __init__(
        self,
        error_type: ErrorType | str,
        message: str,
        recoverable: bool | None = None,
        suggestion: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.type = ErrorType(error_type)
        meta = ERROR_MATRIX[self.type]
        self.message = message
        self.recoverable = meta.recoverable if recoverable is None else recoverable
        self.options = list(meta.options)
        self.default_option = meta.default_option
        self.suggestion = suggestion
        self.context = context
        super().__init__(message)

    def get_meta(self) -> ErrorMeta:
        """Return the metadata of this error, honouring recoverable overrides."""
        return ErrorMeta(
            recoverable=self.recoverable,
            options=tuple(self.options),
            default_option=self.default_option,
        )

    def has_option(self, option: ErrorOption | str) -> bool:
        return ErrorOption(option) in self.options

    def to_display_string(self) -> str:
        """Format the error with its suggestion for display."""
        result = f"[{self.type.value}] {self.message}"
        if self.suggestion:
            result += f"\n  Suggestion: {self.suggestion}"
        return result

    # ==================== factories ====================

    @classmethod
    def redis(cls, message: str, context: dict[str, Any] | None = None) -> "IpuaroError":
        return cls(
            ErrorType.REDIS,
            message,
            suggestion="Check that the storage backend is reachable and writable",
            context=context,
        )

    @classmethod
    def parse(cls, message: str, file_path: str | None = None) -> "IpuaroError":
        msg = f"{message} in {file_path}" if file_path else message
        return cls(
            ErrorType.PARSE,
            msg,
            suggestion="File will be skipped during indexing",
            context={"file_path": file_path} if file_path else None,
        )

    @classmethod
    def llm(cls, message: str, context: dict[str, Any] | None = None) -> "IpuaroError":
        return cls(
            ErrorType.LLM,
            message,
            suggestion="Please ensure the LLM server is running and the model is available",
            context=context,
        )

    @classmethod
    def llm_timeout(cls, message: str) -> "IpuaroError":
        return cls(
            ErrorType.TIMEOUT,
            message,
            suggestion="The LLM request timed out. Try again or check the LLM server status.",
        )

    @classmethod
    def file(cls, message: str, file_path: str | None = None) -> "IpuaroError":
        return cls(
            ErrorType.FILE,
            message,
            suggestion="Check if the file exists and you have permission to access it",
            context={"file_path": file_path} if file_path else None,
        )

    @classmethod
    def file_not_found(cls, file_path: str) -> "IpuaroError":
        return cls(
            ErrorType.FILE,
            f"File not found: {file_path}",
            suggestion="Check the file path and try again",
            context={"file_path": file_path},
        )

    @classmethod
    def command(cls, message: str, command: str | None = None) -> "IpuaroError":
        return cls(
            ErrorType.COMMAND,
            message,
            suggestion="Command requires confirmation or is not in whitelist",
            context={"command": command} if command else None,
        )

    @classmethod
    def command_blacklisted(cls, command: str) -> "IpuaroError":
        return cls(
            ErrorType.COMMAND,
            f"Command is blacklisted: {command}",
            recoverable=False,
            suggestion="This command is not allowed for security reasons",
            context={"command": command},
        )

    @classmethod
    def conflict(cls, message: str, file_path: str | None = None) -> "IpuaroError":
        return cls(
            ErrorType.CONFLICT,
            message,
            suggestion="File was modified externally. Regenerate or skip the change.",
            context={"file_path": file_path} if file_path else None,
        )

    @classmethod
    def validation(cls, message: str, field: str | None = None) -> "IpuaroError":
        return cls(
            ErrorType.VALIDATION,
            message,
            suggestion="Please check the input and try again",
            context={"field": field} if field else None,
        )

    @classmethod
    def timeout(cls, message: str, timeout_ms: int | None = None) -> "IpuaroError":
        return cls(
            ErrorType.TIMEOUT,
            message,
            suggestion="Try again or increase the timeout value",
            context={"timeout_ms": timeout_ms} if timeout_ms else None,
        )

    @classmethod
    def unknown(cls, message: str, original: BaseException | None = None) -> "IpuaroError":
        return cls(
            ErrorType.UNKNOWN,
            message,
            context={"original_error": type(original).__name__} if original else None,
        )


# =============================================================================
# Control Flow / programming errors
# =============================================================================

class InvalidTransitionError(IpuaroError):
    """Raised when the turn state machine is asked for an illegal transition."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(
            ErrorType.UNKNOWN,
            f"Invalid turn state transition: {current} -> {target}",
        )


class PathTraversalError(IpuaroError):
    """Raised when a tool path resolves outside the project root."""

    def __init__(self, attempted_path: str, allowed_base: str):
        self.attempted_path = attempted_path
        self.allowed_base = allowed_base
        super().__init__(
            ErrorType.VALIDATION,
            f"Path '{attempted_path}' is outside the project root '{allowed_base}'",
            suggestion="Use a path inside the project",
            context={"file_path": attempted_path},
        )


class TurnInProgressError(IpuaroError):
    """Raised when a second turn is started on a session that is already busy."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(
            ErrorType.VALIDATION,
            f"A turn is already in progress for session {session_id}",
            suggestion="Wait for the current turn to finish or interrupt it",
        )


def to_ipuaro_error(
    error: BaseException | Any,
    default_type: ErrorType | str = ErrorType.UNKNOWN,
) -> IpuaroError:
    """Convert any raised value into an IpuaroError.

    Args:
        error: The exception (or other raised value)
        default_type: Kind to use when the value is not already an IpuaroError

    Returns:
        The original error if it already is an IpuaroError, a new one otherwise
    """
    if isinstance(error, IpuaroError):
        return error
    if isinstance(error, BaseException):
        return IpuaroError(
            default_type,
            str(error) or type(error).__name__,
            context={"original_error": type(error).__name__},
        )
    return IpuaroError(default_type, str(error))
