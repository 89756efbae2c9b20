"""Tests for the in-memory and JSON-directory storage backends."""

import json

import pytest

from conftest import run
from ipuaro.core import Session, StartSession, UndoEntry
from ipuaro.exceptions import ErrorType, IpuaroError
from ipuaro.storage import (
    SCHEMA_VERSION,
    FileSessionStorage,
    FileStorage,
    InMemorySessionStorage,
    InMemoryStorage,
    SessionRecord,
    project_key,
)
from ipuaro.types import (
    ChatMessage,
    DependencyGraph,
    FileAST,
    FunctionInfo,
    MessageRole,
    SymbolLocation,
    ToolCall,
    create_file_data,
)


@pytest.fixture(params=["memory", "files"])
def any_storage(request, tmp_path):
    if request.param == "memory":
        return InMemoryStorage()
    return FileStorage(tmp_path / "index")


@pytest.fixture(params=["memory", "files"])
def any_session_storage(request, tmp_path):
    if request.param == "memory":
        return InMemorySessionStorage(max_undo_entries=3)
    return FileSessionStorage(tmp_path / "sessions", max_undo_entries=3)


class TestStorage:
    """Behaviour shared by every Storage backend."""

    def test_file_records(self, any_storage):
        data = create_file_data("a\nb", 3, 1000.0)
        run(any_storage.set_file("a.py", data))
        assert run(any_storage.get_file("a.py")) == data
        assert run(any_storage.get_file_count()) == 1
        run(any_storage.delete_file("a.py"))
        assert run(any_storage.get_file("a.py")) is None

    def test_indexes_are_replaced_together(self, any_storage):
        symbols = {"greet": [SymbolLocation("pkg/core.py", 4, "function")]}
        graph = DependencyGraph(imports={"a.py": ["b.py"]}, imported_by={"b.py": ["a.py"]})
        run(any_storage.set_indexes(symbols, graph))
        assert run(any_storage.get_symbol_index()) == symbols
        assert run(any_storage.get_deps_graph()).dependents_of("b.py") == ["a.py"]

    def test_asts_and_config(self, any_storage):
        file_ast = FileAST(functions=[FunctionInfo("f", 1, 2, params=["x"])])
        run(any_storage.set_asts({"a.py": file_ast}))
        run(any_storage.set_project_config("last_indexed", 123))
        assert run(any_storage.get_ast("a.py")) == file_ast
        assert run(any_storage.get_project_config("last_indexed")) == 123

    def test_clear(self, any_storage):
        run(any_storage.set_file("a.py", create_file_data("x", 1, 0.0)))
        run(any_storage.set_project_config("k", "v"))
        run(any_storage.clear())
        assert run(any_storage.get_all_files()) == {}
        assert run(any_storage.get_project_config("k")) is None


class TestFileStorage:
    """Tests specific to the JSON-directory backend."""

    def test_data_survives_reopen(self, tmp_path):
        first = FileStorage(tmp_path / "index")
        run(first.set_file("a.py", create_file_data("x = 1", 5, 10.0)))
        run(first.set_indexes({"x": [SymbolLocation("a.py", 1, "variable")]}, DependencyGraph()))

        second = FileStorage(tmp_path / "index")
        assert run(second.get_file("a.py")).lines == ["x = 1"]
        assert run(second.get_symbol_index())["x"][0].kind == "variable"

    def test_corrupt_document_raises_storage_error(self, tmp_path):
        directory = tmp_path / "index"
        directory.mkdir()
        (directory / "files.json").write_text("{not json")
        with pytest.raises(IpuaroError) as exc_info:
            run(FileStorage(directory).get_all_files())
        assert exc_info.value.type == ErrorType.REDIS

    def test_newer_session_schema_raises_storage_error(self, tmp_path):
        (tmp_path / "abc.json").write_text(json.dumps({
            "schema_version": 99, "id": "abc", "project_name": "p",
            "created_at": 1, "last_activity_at": 1,
        }))
        with pytest.raises(IpuaroError) as exc_info:
            run(StartSession(FileSessionStorage(tmp_path)).execute("p"))
        assert exc_info.value.type == ErrorType.REDIS
        assert "unsupported session schema version 99" in exc_info.value.message

    def test_invalid_undo_entry_raises_storage_error(self, tmp_path):
        (tmp_path / "abc.undo.json").write_text(json.dumps([{"file_path": "a.py"}]))
        with pytest.raises(IpuaroError) as exc_info:
            run(FileSessionStorage(tmp_path).get_undo_stack("abc"))
        assert exc_info.value.type == ErrorType.REDIS

    def test_project_key_is_stable(self, tmp_path):
        assert project_key(tmp_path) == project_key(tmp_path / ".")
        assert project_key(tmp_path).startswith(tmp_path.name + "-")


class TestSessionStorage:
    """Behaviour shared by every SessionStorage backend."""

    def test_session_round_trip(self, any_session_storage):
        session = Session("proj")
        session.add_message(ChatMessage(role=MessageRole.USER, content="hi"))
        session.add_message(ChatMessage(
            role=MessageRole.ASSISTANT,
            tool_calls=[ToolCall("c1", "get_lines", {"path": "a.py"})],
        ))
        session.add_input_to_history("hi")
        session.stats.tool_calls = 4
        run(any_session_storage.save_session(session))

        loaded = run(any_session_storage.load_session(session.id))
        assert loaded.project_name == "proj"
        assert loaded.history[1].tool_calls[0].arguments == {"path": "a.py"}
        assert list(loaded.input_history) == ["hi"]
        assert loaded.stats.tool_calls == 4

    def test_missing_session(self, any_session_storage):
        assert run(any_session_storage.load_session("nope")) is None
        assert run(any_session_storage.session_exists("nope")) is False

    def test_list_sessions_most_recent_first(self, any_session_storage):
        old = Session("proj", created_at=1)
        new = Session("proj", created_at=2)
        old.last_activity_at, new.last_activity_at = 10, 20
        run(any_session_storage.save_session(old))
        run(any_session_storage.save_session(new))
        run(any_session_storage.save_session(Session("other")))

        items = run(any_session_storage.list_sessions("proj"))
        assert [i.id for i in items] == [new.id, old.id]
        assert run(any_session_storage.get_latest_session("proj")).id == new.id

    def test_undo_stack_is_capped(self, any_session_storage):
        session = Session("proj")
        run(any_session_storage.save_session(session))
        for i in range(5):
            run(any_session_storage.push_undo_entry(session.id, UndoEntry.create(f"f{i}.py", [], ["x"])))

        stack = run(any_session_storage.get_undo_stack(session.id))
        assert [e.file_path for e in stack] == ["f2.py", "f3.py", "f4.py"]
        assert run(any_session_storage.pop_undo_entry(session.id)).file_path == "f4.py"

    def test_load_restores_undo_stack(self, any_session_storage):
        session = Session("proj")
        run(any_session_storage.save_session(session))
        run(any_session_storage.push_undo_entry(session.id, UndoEntry.create("a.py", ["1"], ["2"])))
        loaded = run(any_session_storage.load_session(session.id))
        assert loaded.undo_depth == 1

    def test_delete_and_clear(self, any_session_storage):
        a, b = Session("proj"), Session("proj")
        run(any_session_storage.save_session(a))
        run(any_session_storage.save_session(b))
        run(any_session_storage.delete_session(a.id))
        assert run(any_session_storage.session_exists(a.id)) is False
        run(any_session_storage.clear_all_sessions())
        assert run(any_session_storage.list_sessions()) == []


class TestSessionRecord:
    """Tests for the versioned session schema."""

    def test_future_schema_version_is_rejected(self):
        payload = SessionRecord.from_session(Session("proj")).model_dump()
        payload["schema_version"] = SCHEMA_VERSION + 1
        with pytest.raises(ValueError):
            SessionRecord.model_validate(payload)

    def test_record_is_json_serializable(self):
        session = Session("proj")
        session.add_message(ChatMessage(role=MessageRole.USER, content="hi"))
        dumped = SessionRecord.from_session(session).model_dump_json()
        assert json.loads(dumped)["schema_version"] == SCHEMA_VERSION
