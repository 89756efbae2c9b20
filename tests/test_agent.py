"""Tests for the CodingAgent turn loop."""

import asyncio

import pytest

from conftest import ScriptedLLM, run
from ipuaro.agent import CANCELLED_MESSAGE, CodingAgent
from ipuaro.core import TurnState
from ipuaro.exceptions import ErrorType, TurnInProgressError
from ipuaro.tools import ToolRegistry, get_default_tools
from ipuaro.types import LLMResponse, MessageRole, StopReason, ToolCall

R, T, TC, AC = TurnState.READY, TurnState.THINKING, TurnState.TOOL_CALL, TurnState.AWAITING_CONFIRMATION


def answer(text: str) -> LLMResponse:
    return LLMResponse(content=text, tokens=10)


def calls(*tool_calls: ToolCall) -> LLMResponse:
    return LLMResponse(content="", tool_calls=list(tool_calls), stop_reason=StopReason.TOOL_USE)


def edit_call(call_id: str = "c1") -> ToolCall:
    return ToolCall(call_id, "edit_lines", {
        "path": "pkg/util.py", "start": 2, "end": 2, "content": "    return value",
    })


@pytest.fixture
def make_agent(project_root, storage, session, session_storage, settings):
    """Build an agent around a scripted LLM."""
    def factory(responses, confirm=True, **kwargs):
        async def on_confirm(message: str) -> bool:
            factory.confirmations.append(message)
            return confirm
        return CodingAgent(
            llm=ScriptedLLM(responses),
            registry=ToolRegistry(get_default_tools()),
            session=session,
            storage=storage,
            project_root=project_root,
            session_storage=session_storage,
            settings=settings,
            on_confirm=on_confirm,
            **kwargs,
        )
    factory.confirmations = []
    return factory


class BlockingLLM(ScriptedLLM):
    """LLM whose chat waits until released."""

    def __init__(self):
        super().__init__([answer("late")])
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def chat(self, messages, tools=None):
        self.started.set()
        await self.release.wait()
        return await super().chat(messages, tools)


class TestFinalAnswer:
    """Turns that end with a plain answer."""

    def test_answer_without_tools(self, make_agent, session):
        agent = make_agent([answer("Hello!")])
        result = run(agent.run_turn("hi"))

        assert result.success is True
        assert result.content == "Hello!"
        assert result.states == [R, T, R]
        assert [m.role for m in session.history] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert list(session.input_history) == ["hi"]
        assert session.stats.total_tokens == 10

    def test_system_prompt_and_tools_are_sent(self, make_agent):
        agent = make_agent([answer("ok")])
        run(agent.run_turn("hi"))
        messages = agent.llm.calls[0]
        assert messages[0].role == MessageRole.SYSTEM
        assert "project" in messages[0].content
        assert messages[1].content == "hi"

    def test_session_is_saved_after_turn(self, make_agent, session, session_storage):
        run(make_agent([answer("ok")]).run_turn("hi"))
        saved = run(session_storage.load_session(session.id))
        assert len(saved.history) == 2

    def test_state_listener_sees_every_move(self, make_agent):
        moves = []
        agent = make_agent([answer("ok")], on_state_change=lambda old, new: moves.append((old, new)))
        run(agent.run_turn("hi"))
        assert moves == [(R, T), (T, R)]


class TestToolCalls:
    """Turns where the model calls tools."""

    def test_read_tool_result_is_folded_in(self, make_agent, session):
        agent = make_agent([calls(ToolCall("c1", "get_lines", {"path": "pkg/util.py"})), answer("done")])
        result = run(agent.run_turn("show util"))

        assert result.content == "done"
        assert result.tool_calls == 1
        assert result.iterations == 2
        assert result.states == [R, T, TC, T, R]
        tool_message = session.history[2]
        assert tool_message.role == MessageRole.TOOL
        assert tool_message.tool_call_id == "c1"
        assert "def helper(value):" in tool_message.content
        assert session.context.files_in_context == ["pkg/util.py"]
        assert agent.llm.calls[1][-1].role == MessageRole.TOOL

    def test_approved_edit_records_undo(self, make_agent, session, session_storage, project_root):
        agent = make_agent([calls(edit_call()), answer("edited")], confirm=True)
        result = run(agent.run_turn("fix util"))

        assert result.success is True
        assert result.states == [R, T, TC, AC, TC, T, R]
        assert make_agent.confirmations == ["Replace lines 2-2 in pkg/util.py"]
        assert (project_root / "pkg" / "util.py").read_text() == "def helper(value):\n    return value\n"
        assert session.stats.edits_applied == 1
        assert session.undo_depth == 1
        assert len(run(session_storage.get_undo_stack(session.id))) == 1
        assert '"undo"' not in session.history[2].content

    def test_denied_confirmation_ends_turn(self, make_agent, session, project_root):
        read_call = ToolCall("c2", "get_lines", {"path": "README.md"})
        agent = make_agent([calls(edit_call(), read_call), answer("unreachable")], confirm=False)
        result = run(agent.run_turn("fix util"))

        assert result.cancelled is True
        assert result.success is False
        assert result.tool_calls == 1
        assert result.states == [R, T, TC, AC, R]
        assert len(agent.llm.calls) == 1
        assert session.stats.edits_rejected == 1
        assert session.stats.edits_applied == 0
        assert session.undo_depth == 0
        assert "User cancelled operation" in session.history[2].content
        assert session.history[3].tool_call_id == "c2"
        assert CANCELLED_MESSAGE in session.history[3].content
        assert "hello" in (project_root / "pkg" / "util.py").read_text()

    def test_tool_error_is_reported_to_model(self, make_agent, session):
        agent = make_agent([calls(ToolCall("c1", "get_lines", {"path": "missing.py"})), answer("sorry")])
        result = run(agent.run_turn("read missing"))
        assert result.success is True
        assert "File not found: missing.py" in session.history[2].content

    def test_iteration_limit(self, make_agent, settings):
        looping = ToolCall("c", "get_structure", {})
        agent = make_agent([calls(looping)] * settings.max_tool_iterations)
        result = run(agent.run_turn("loop"))

        assert result.error is not None
        assert result.error.type == ErrorType.LLM
        assert "tool iterations" in result.error.message
        assert result.states[-2:] == [TurnState.ERROR, R]
        assert agent.state.state == R


class TestFailures:
    """LLM failures, concurrency and interrupts."""

    def test_transient_llm_error_is_retried(self, make_agent):
        agent = make_agent([ConnectionError("refused"), answer("ok")])
        result = run(agent.run_turn("hi"))
        assert result.content == "ok"
        assert len(agent.llm.calls) == 2

    def test_llm_failure_ends_in_error_then_ready(self, make_agent, session):
        agent = make_agent([ConnectionError("refused")] * 3)
        result = run(agent.run_turn("hi"))

        assert result.success is False
        assert result.error.type == ErrorType.LLM
        assert result.states == [R, T, TurnState.ERROR, R]
        assert session.history[0].role == MessageRole.USER

    def test_next_turn_after_failure_starts_fresh(self, make_agent):
        agent = make_agent([ConnectionError("a"), ConnectionError("b"), answer("back")])
        assert run(agent.run_turn("first")).success is False
        assert run(agent.run_turn("second")).content == "back"

    def test_concurrent_turn_is_rejected(self, make_agent):
        agent = make_agent([])
        agent.llm = BlockingLLM()

        async def scenario():
            first = asyncio.create_task(agent.run_turn("one"))
            await agent.llm.started.wait()
            with pytest.raises(TurnInProgressError):
                await agent.run_turn("two")
            agent.llm.release.set()
            return await first

        assert run(scenario()).content == "late"

    def test_second_agent_on_same_session_is_rejected(self, make_agent):
        first_agent = make_agent([])
        first_agent.llm = BlockingLLM()
        second_agent = make_agent([answer("never")])

        async def scenario():
            first = asyncio.create_task(first_agent.run_turn("one"))
            await first_agent.llm.started.wait()
            assert second_agent.is_busy is True
            with pytest.raises(TurnInProgressError):
                await second_agent.run_turn("two")
            first_agent.llm.release.set()
            return await first

        assert run(scenario()).content == "late"
        assert second_agent.llm.calls == []
        assert second_agent.is_busy is False

    def test_interrupt(self, make_agent, session):
        agent = make_agent([])
        agent.llm = BlockingLLM()

        async def scenario():
            turn = asyncio.create_task(agent.run_turn("one"))
            await agent.llm.started.wait()
            agent.interrupt()
            return await turn

        result = run(scenario())
        assert result.interrupted is True
        assert agent.llm.aborted is True
        assert agent.state.state == R
        assert agent.is_busy is False
