"""Tests for the error taxonomy and ErrorHandler."""

import pytest

from conftest import run
from ipuaro.core import ErrorHandler
from ipuaro.exceptions import (
    ERROR_MATRIX,
    ErrorOption,
    ErrorType,
    InvalidTransitionError,
    IpuaroError,
    to_ipuaro_error,
)


class TestIpuaroError:
    """Tests for IpuaroError construction and helpers."""

    @pytest.mark.parametrize("kind", list(ErrorType))
    def test_options_follow_matrix(self, kind):
        error = IpuaroError(kind, "boom")
        meta = ERROR_MATRIX[kind]
        assert error.recoverable == meta.recoverable
        assert error.options == list(meta.options)
        assert error.default_option == meta.default_option
        assert error.has_option(ErrorOption.ABORT)

    def test_recoverable_override(self):
        error = IpuaroError.command_blacklisted("rm -rf /")
        assert error.type == ErrorType.COMMAND
        assert error.recoverable is False
        assert error.get_meta().recoverable is False

    def test_display_string_includes_suggestion(self):
        error = IpuaroError.timeout("took too long")
        assert error.to_display_string().startswith("[timeout] took too long")
        assert "Suggestion:" in error.to_display_string()

    def test_to_ipuaro_error_keeps_existing(self):
        error = IpuaroError.parse("bad")
        assert to_ipuaro_error(error) is error

    def test_to_ipuaro_error_wraps_exceptions(self):
        error = to_ipuaro_error(ValueError("nope"), ErrorType.FILE)
        assert error.type == ErrorType.FILE
        assert error.message == "nope"
        assert error.context == {"original_error": "ValueError"}

    def test_invalid_transition_message(self):
        error = InvalidTransitionError("ready", "tool_call")
        assert error.message == "Invalid turn state transition: ready -> tool_call"


class TestErrorHandler:
    """Tests for ErrorHandler decisions and retry bookkeeping."""

    def test_parse_errors_are_auto_skipped(self):
        result = ErrorHandler().handle_sync(IpuaroError.parse("x"))
        assert result.action == ErrorOption.SKIP
        assert result.should_continue is True

    def test_non_recoverable_errors_abort(self):
        result = ErrorHandler().handle_sync(IpuaroError.redis("down"))
        assert result.action == ErrorOption.ABORT
        assert result.should_continue is False

    def test_default_option_without_callback(self):
        result = ErrorHandler().handle_sync(IpuaroError.conflict("changed"))
        assert result.action == ErrorOption.SKIP
        assert result.should_continue is True

    def test_retry_increments_counter(self):
        handler = ErrorHandler(max_retries=3)
        error = IpuaroError.llm("flaky")
        first = handler.handle_sync(error, "k")
        second = handler.handle_sync(error, "k")
        assert (first.action, first.retry_count) == (ErrorOption.RETRY, 1)
        assert (second.action, second.retry_count) == (ErrorOption.RETRY, 2)
        assert handler.get_retry_count("k") == 2

    def test_retry_past_cap_downgrades_to_abort(self):
        handler = ErrorHandler(max_retries=2)
        error = IpuaroError.llm("flaky")
        handler.handle_sync(error, "k")
        handler.handle_sync(error, "k")
        result = handler.handle_sync(error, "k")
        assert result.action == ErrorOption.ABORT
        assert result.should_continue is False
        assert result.retry_count == 3

    def test_auto_retry_aborts_once_exceeded(self):
        handler = ErrorHandler(max_retries=1, auto_retry_llm_errors=True)
        error = IpuaroError.llm_timeout("slow")
        assert handler.handle_sync(error, "k").action == ErrorOption.RETRY
        assert handler.is_max_retries_exceeded("k")
        assert handler.handle_sync(error, "k").action == ErrorOption.ABORT

    def test_non_retry_decision_clears_key(self):
        handler = ErrorHandler()
        handler.handle_sync(IpuaroError.llm("x"), "k")
        handler.handle_sync(IpuaroError.validation("y"), "k")
        assert handler.get_retry_count("k") == 0

    def test_context_key_defaults_to_message(self):
        handler = ErrorHandler()
        handler.handle_sync(IpuaroError.llm("same message"))
        assert handler.get_retry_count("same message") == 1

    def test_reset_retries(self):
        handler = ErrorHandler()
        handler.handle_sync(IpuaroError.llm("x"), "a")
        handler.handle_sync(IpuaroError.llm("x"), "b")
        handler.reset_retries("a")
        assert handler.get_retry_count("a") == 0
        assert handler.get_retry_count("b") == 1
        handler.reset_retries()
        assert handler.get_retry_count("b") == 0

    def test_callback_choice_is_used(self):
        seen = []

        async def choose(error, options, default):
            seen.append((options, default))
            return ErrorOption.ABORT

        handler = ErrorHandler(on_error=choose)
        result = run(handler.handle(IpuaroError.command("needs ok")))
        assert result.action == ErrorOption.ABORT
        assert seen == [([ErrorOption.CONFIRM, ErrorOption.SKIP, ErrorOption.ABORT], ErrorOption.CONFIRM)]

    def test_callback_not_asked_for_non_recoverable(self):
        async def choose(error, options, default):
            raise AssertionError("callback must not be called")

        result = run(ErrorHandler(on_error=choose).handle(IpuaroError.unknown("x")))
        assert result.action == ErrorOption.ABORT


class TestGuardedExecution:
    """Tests for with_retry and wrap."""

    def test_with_retry_returns_after_transient_failures(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise IpuaroError.llm("flaky")
            return "ok"

        handler = ErrorHandler(max_retries=3)
        assert run(handler.with_retry(flaky, ErrorType.LLM, "k")) == "ok"
        assert len(attempts) == 3
        assert handler.get_retry_count("k") == 0

    def test_with_retry_raises_when_retries_run_out(self):
        async def always_fails():
            raise ConnectionError("refused")

        handler = ErrorHandler(max_retries=2)
        with pytest.raises(IpuaroError) as exc_info:
            run(handler.with_retry(always_fails, ErrorType.LLM, "k"))
        assert exc_info.value.message == "Max retries (2) exceeded for: k"
        assert exc_info.value.type == ErrorType.LLM

    def test_with_retry_raises_non_retry_errors_immediately(self):
        attempts = []

        async def invalid():
            attempts.append(1)
            raise IpuaroError.validation("bad input")

        with pytest.raises(IpuaroError, match="bad input"):
            run(ErrorHandler().with_retry(invalid, ErrorType.LLM, "k"))
        assert len(attempts) == 1

    def test_wrap_success(self):
        async def ok():
            return 42

        result = run(ErrorHandler().wrap(ok, ErrorType.FILE))
        assert result.success is True
        assert result.data == 42

    def test_wrap_failure_converts_error(self):
        async def broken():
            raise FileNotFoundError("missing.txt")

        result = run(ErrorHandler().wrap(broken, ErrorType.FILE))
        assert result.success is False
        assert result.error.type == ErrorType.FILE
