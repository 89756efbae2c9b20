"""Tests for Session, the turn state machine and StartSession."""

import pytest

from conftest import run
from ipuaro.core import (
    TRANSITIONS,
    Session,
    StartSession,
    TurnState,
    TurnStateMachine,
    UndoEntry,
)
from ipuaro.exceptions import InvalidTransitionError
from ipuaro.types import ChatMessage, MessageRole, md5


class TestTurnStateMachine:
    """Tests for validated turn state transitions."""

    def test_starts_ready(self):
        machine = TurnStateMachine()
        assert machine.state == TurnState.READY
        assert machine.is_idle

    def test_tool_calling_sequence(self):
        changes = []
        machine = TurnStateMachine(on_change=lambda old, new: changes.append((old, new)))
        for target in (
            TurnState.THINKING,
            TurnState.TOOL_CALL,
            TurnState.AWAITING_CONFIRMATION,
            TurnState.TOOL_CALL,
            TurnState.THINKING,
            TurnState.READY,
        ):
            machine.transition(target)
        assert machine.history[0] == TurnState.READY
        assert machine.history[-1] == TurnState.READY
        assert len(changes) == 6

    @pytest.mark.parametrize("current,target", [
        (TurnState.READY, TurnState.TOOL_CALL),
        (TurnState.AWAITING_CONFIRMATION, TurnState.THINKING),
        (TurnState.ERROR, TurnState.THINKING),
        (TurnState.READY, TurnState.READY),
    ])
    def test_illegal_transitions_raise(self, current, target):
        assert target not in TRANSITIONS[current]
        machine = TurnStateMachine()
        machine._state = current
        with pytest.raises(InvalidTransitionError):
            machine.transition(target)

    def test_interrupt_returns_to_ready(self):
        machine = TurnStateMachine()
        machine.transition(TurnState.THINKING)
        machine.transition(TurnState.TOOL_CALL)
        machine.interrupt()
        assert machine.state == TurnState.READY

    def test_interrupt_when_ready_is_noop(self):
        machine = TurnStateMachine()
        machine.interrupt()
        assert machine.history == [TurnState.READY]


class TestSession:
    """Tests for session bookkeeping."""

    def test_undo_stack_evicts_oldest(self):
        session = Session("p", max_undo_entries=3)
        entries = [UndoEntry.create(f"f{i}.py", [], [str(i)]) for i in range(5)]
        for entry in entries:
            session.add_undo_entry(entry)
        assert session.undo_depth == 3
        assert session.pop_undo_entry() is entries[4]
        assert [e.file_path for e in session.undo_stack] == ["f2.py", "f3.py"]

    def test_pop_empty_undo_stack(self):
        assert Session("p").pop_undo_entry() is None

    def test_input_history_skips_blank_and_repeats(self):
        session = Session("p", max_input_history=2)
        for text in ["a", "a", "  ", "b", "c"]:
            session.add_input_to_history(text)
        assert list(session.input_history) == ["b", "c"]

    def test_add_message_sets_timestamp(self):
        session = Session("p")
        session.add_message(ChatMessage(role=MessageRole.USER, content="hi"))
        assert session.history[0].timestamp > 0

    def test_add_tool_result(self):
        session = Session("p")
        session.add_tool_result("call_1", "get_lines", "{}")
        message = session.history[0]
        assert message.role == MessageRole.TOOL
        assert (message.tool_call_id, message.name) == ("call_1", "get_lines")

    def test_context_usage_flags_compression(self):
        session = Session("p")
        session.update_context_usage(900, 1000, 0.8)
        assert session.context.token_usage == pytest.approx(0.9)
        assert session.context.needs_compression is True
        session.update_context_usage(100, 1000, 0.8)
        assert session.context.needs_compression is False

    def test_clear_history_resets_context(self):
        session = Session("p")
        session.add_message(ChatMessage(role=MessageRole.USER, content="hi"))
        session.add_file_to_context("a.py")
        session.clear_history()
        assert session.history == []
        assert session.context.files_in_context == []

    def test_undo_entry_hash_matches_new_content(self):
        entry = UndoEntry.create("a.py", ["old"], ["new", "lines"], "edit")
        assert entry.content_hash == md5("new\nlines")
        assert entry.id


class TestStartSession:
    """Tests for resuming or creating sessions."""

    def test_creates_new_session(self, session_storage):
        result = run(StartSession(session_storage).execute("proj"))
        assert result.is_new is True
        assert run(session_storage.session_exists(result.session.id))

    def test_resumes_latest_session(self, session_storage):
        existing = Session("proj")
        run(session_storage.save_session(existing))
        result = run(StartSession(session_storage).execute("proj"))
        assert result.is_new is False
        assert result.session.id == existing.id

    def test_ignores_other_projects(self, session_storage):
        run(session_storage.save_session(Session("other")))
        result = run(StartSession(session_storage).execute("proj"))
        assert result.is_new is True

    def test_force_new(self, session_storage):
        run(session_storage.save_session(Session("proj")))
        result = run(StartSession(session_storage).execute("proj", force_new=True))
        assert result.is_new is True
        assert len(run(session_storage.list_sessions("proj"))) == 2

    def test_resume_by_id(self, session_storage):
        first = Session("proj", created_at=1)
        second = Session("proj")
        run(session_storage.save_session(first))
        run(session_storage.save_session(second))
        result = run(StartSession(session_storage).execute("proj", session_id=first.id))
        assert result.session.id == first.id
        assert result.is_new is False

    def test_unknown_id_falls_back_to_latest(self, session_storage):
        existing = Session("proj")
        run(session_storage.save_session(existing))
        result = run(StartSession(session_storage).execute("proj", session_id="missing"))
        assert result.session.id == existing.id
