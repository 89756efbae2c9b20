"""Recovery policy for IpuaroError values.

The ErrorHandler turns an error into a decision (retry, skip, abort, ...)
following the error matrix, an optional auto policy and an optional
human-choice callback. Retry counters are owned by the handler instance and
keyed by a caller-supplied context key.
"""

from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, TypeVar

from ..exceptions import ErrorOption, ErrorType, IpuaroError, to_ipuaro_error
from ..logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3

ErrorChoiceCallback = Callable[
    [IpuaroError, list[ErrorOption], ErrorOption],
    Awaitable[ErrorOption],
]

CONTINUE_ACTIONS = {
    ErrorOption.SKIP,
    ErrorOption.CONFIRM,
    ErrorOption.REGENERATE,
}


@dataclass
class ErrorHandlingResult:
    """Decision produced by ErrorHandler.handle."""
    action: ErrorOption
    should_continue: bool
    retry_count: int | None = None


@dataclass
class WrapResult(Generic[T]):
    """Outcome of a single guarded attempt."""
    success: bool
    data: T | None = None
    error: IpuaroError | None = None


class ErrorHandler:
    """Resolves errors into recovery actions.

    Resolution order for handle():
    1. auto policy (auto-skip parse errors, auto-retry llm/timeout errors)
    2. forced abort for non-recoverable errors
    3. the human-choice callback, if configured
    4. the error's default option
    """

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        auto_skip_parse_errors: bool = True,
        auto_retry_llm_errors: bool = False,
        on_error: ErrorChoiceCallback | None = None,
    ):
        """Initialize the handler.

        Args:
            max_retries: Retry cap per context key.
            auto_skip_parse_errors: Skip parse errors without asking.
            auto_retry_llm_errors: Retry llm/timeout errors without asking.
            on_error: Async callback asked to pick an option.
        """
        self.max_retries = max_retries
        self.auto_skip_parse_errors = auto_skip_parse_errors
        self.auto_retry_llm_errors = auto_retry_llm_errors
        self.on_error = on_error
        self._retry_counts: dict[str, int] = {}

    # ==================== retry counters ====================

    def get_retry_count(self, key: str) -> int:
        return self._retry_counts.get(key, 0)

    def is_max_retries_exceeded(self, key: str) -> bool:
        return self.get_retry_count(key) >= self.max_retries

    def reset_retries(self, key: str | None = None) -> None:
        """Clear one counter, or all of them when no key is given."""
        if key is None:
            self._retry_counts.clear()
        else:
            self._retry_counts.pop(key, None)

    def _increment_retry(self, key: str) -> int:
        count = self.get_retry_count(key) + 1
        self._retry_counts[key] = count
        return count

    # ==================== decisions ====================

    def _auto_action(self, error: IpuaroError, key: str) -> ErrorOption | None:
        if error.type == ErrorType.PARSE and self.auto_skip_parse_errors:
            return ErrorOption.SKIP

        if error.type in (ErrorType.LLM, ErrorType.TIMEOUT) and self.auto_retry_llm_errors:
            if self.is_max_retries_exceeded(key):
                return ErrorOption.ABORT
            return ErrorOption.RETRY

        return None

    def _create_result(self, action: ErrorOption, key: str) -> ErrorHandlingResult:
        if action == ErrorOption.RETRY:
            count = self._increment_retry(key)
            if count > self.max_retries:
                logger.warning(f"max retries ({self.max_retries}) exceeded for {key}")
                return ErrorHandlingResult(
                    action=ErrorOption.ABORT,
                    should_continue=False,
                    retry_count=count,
                )
            return ErrorHandlingResult(
                action=ErrorOption.RETRY,
                should_continue=True,
                retry_count=count,
            )

        retry_count = self.get_retry_count(key)
        self.reset_retries(key)
        return ErrorHandlingResult(
            action=action,
            should_continue=action in CONTINUE_ACTIONS,
            retry_count=retry_count,
        )

    def _resolve_without_callback(
        self, error: IpuaroError, key: str
    ) -> tuple[ErrorOption | None, ErrorHandlingResult | None]:
        auto = self._auto_action(error, key)
        if auto is not None:
            return auto, None

        if not error.recoverable:
            logger.error(f"non-recoverable error: {error.to_display_string()}")
            return None, ErrorHandlingResult(action=ErrorOption.ABORT, should_continue=False)

        return None, None

    async def handle(self, error: IpuaroError, context_key: str | None = None) -> ErrorHandlingResult:
        """Decide how to recover from an error.

        Args:
            error: The error to handle.
            context_key: Key of the retry counter, defaults to the error message.

        Returns:
            The resolved decision.
        """
        key = context_key or error.message
        action, forced = self._resolve_without_callback(error, key)
        if forced is not None:
            return forced
        if action is not None:
            return self._create_result(action, key)

        if self.on_error is not None:
            choice = await self.on_error(error, list(error.options), error.default_option)
            return self._create_result(ErrorOption(choice), key)

        return self._create_result(error.default_option, key)

    def handle_sync(self, error: IpuaroError, context_key: str | None = None) -> ErrorHandlingResult:
        """Variant of handle() that never consults the callback."""
        key = context_key or error.message
        action, forced = self._resolve_without_callback(error, key)
        if forced is not None:
            return forced
        if action is not None:
            return self._create_result(action, key)
        return self._create_result(error.default_option, key)

    # ==================== guarded execution ====================

    async def with_retry(
        self,
        fn: Callable[[], Awaitable[T]],
        error_type: ErrorType | str,
        context_key: str,
    ) -> T:
        """Run fn until it succeeds or the handler stops retrying.

        Args:
            fn: Zero-argument coroutine function.
            error_type: Kind given to raw exceptions raised by fn.
            context_key: Key of the retry counter.

        Returns:
            The result of the first successful attempt.

        Raises:
            IpuaroError: When the decision is not retry, or retries ran out.
        """
        while not self.is_max_retries_exceeded(context_key):
            try:
                result = await fn()
                self.reset_retries(context_key)
                return result
            except IpuaroError as e:
                error = e
            except Exception as e:
                error = to_ipuaro_error(e, error_type)

            decision = await self.handle(error, context_key)
            if decision.action != ErrorOption.RETRY or not decision.should_continue:
                raise error
            logger.info(f"retrying {context_key} ({decision.retry_count}/{self.max_retries})")

        raise IpuaroError(
            error_type,
            f"Max retries ({self.max_retries}) exceeded for: {context_key}",
        )

    async def wrap(
        self,
        fn: Callable[[], Awaitable[T]],
        error_type: ErrorType | str,
        context_key: str | None = None,
    ) -> WrapResult[T]:
        """Run fn once, returning its data or the converted error."""
        try:
            data = await fn()
            if context_key:
                self.reset_retries(context_key)
            return WrapResult(success=True, data=data)
        except Exception as e:
            error = to_ipuaro_error(e, error_type)
            logger.debug(f"wrapped call failed: {error.message}")
            return WrapResult(success=False, error=error)
