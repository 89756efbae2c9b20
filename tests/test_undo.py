"""Tests for UndoChange."""

import pytest

from conftest import run
from ipuaro.core import UndoChange, UndoEntry


@pytest.fixture
def undo(session_storage, storage, project_root):
    return UndoChange(session_storage, storage, project_root)


def record_edit(session, session_storage, project_root, rel_path, new_text):
    """Write new_text to a file and record the edit the way the agent does."""
    path = project_root / rel_path
    previous = path.read_text().split("\n") if path.exists() else []
    path.write_text(new_text)
    entry = UndoEntry.create(rel_path, previous, new_text.split("\n"), f"edit {rel_path}")
    session.add_undo_entry(entry)
    session.stats.edits_applied += 1
    run(session_storage.push_undo_entry(session.id, entry))
    return entry


class TestUndoChange:
    """Tests for reversing recorded edits."""

    def test_restores_previous_content(self, undo, session, session_storage, storage, project_root):
        run(session_storage.save_session(session))
        entry = record_edit(session, session_storage, project_root, "pkg/util.py", "def helper():\n    pass\n")

        result = run(undo.execute(session))

        assert result.success is True
        assert result.entry.id == entry.id
        assert (project_root / "pkg" / "util.py").read_text() == "def helper(value):\n    return f'hello {value}'\n"
        assert run(storage.get_file("pkg/util.py")).lines[0] == "def helper(value):"
        assert session.undo_depth == 0
        assert session.stats.edits_applied == 0
        assert run(undo.can_undo(session)) is False

    def test_undo_of_created_file_empties_it(self, undo, session, session_storage, project_root):
        run(session_storage.save_session(session))
        record_edit(session, session_storage, project_root, "new.py", "x = 1")
        assert run(undo.execute(session)).success is True
        assert (project_root / "new.py").read_text() == ""

    def test_undo_of_deleted_file_restores_it(self, undo, session, session_storage, storage, project_root):
        run(session_storage.save_session(session))
        path = project_root / "pkg" / "util.py"
        previous = path.read_text().split("\n")
        path.unlink()
        entry = UndoEntry.create("pkg/util.py", previous, [], "Delete pkg/util.py")
        session.add_undo_entry(entry)
        run(session_storage.push_undo_entry(session.id, entry))

        assert run(undo.execute(session)).success is True
        assert path.read_text() == "def helper(value):\n    return f'hello {value}'\n"
        assert run(storage.get_file("pkg/util.py")) is not None

    def test_conflict_keeps_entry(self, undo, session, session_storage, project_root):
        run(session_storage.save_session(session))
        entry = record_edit(session, session_storage, project_root, "pkg/util.py", "first\n")
        (project_root / "pkg" / "util.py").write_text("edited by someone else\n")

        result = run(undo.execute(session))

        assert result.success is False
        assert result.error == "File has been modified since the change was made"
        assert (project_root / "pkg" / "util.py").read_text() == "edited by someone else\n"
        assert session.undo_depth == 1
        assert run(undo.peek_undo_entry(session)).id == entry.id

    def test_nothing_to_undo(self, undo, session, session_storage):
        run(session_storage.save_session(session))
        result = run(undo.execute(session))
        assert result.success is False
        assert result.error == "No changes to undo"
        assert run(undo.peek_undo_entry(session)) is None

    def test_undo_is_lifo(self, undo, session, session_storage, project_root):
        run(session_storage.save_session(session))
        record_edit(session, session_storage, project_root, "README.md", "one")
        record_edit(session, session_storage, project_root, "README.md", "two")

        assert run(undo.execute(session)).success is True
        assert (project_root / "README.md").read_text() == "one"
        assert run(undo.execute(session)).success is True
        assert (project_root / "README.md").read_text() == "# demo\n"
