"""Tests for project path validation."""

import pytest

from ipuaro.exceptions import ErrorType, PathTraversalError
from ipuaro.tools.security import PathValidator


class TestPathValidator:
    """Tests for PathValidator class."""

    def test_relative_paths_resolve_against_root(self, tmp_path):
        validator = PathValidator(tmp_path)
        assert validator.validate("src/main.py") == tmp_path.resolve() / "src" / "main.py"
        assert validator.relative("src/../src/main.py") == "src/main.py"

    def test_absolute_path_inside_root(self, tmp_path):
        validator = PathValidator(tmp_path)
        assert validator.relative(str(tmp_path / "a.txt")) == "a.txt"

    def test_root_itself_is_allowed(self, tmp_path):
        assert PathValidator(tmp_path).relative(".") == "."

    @pytest.mark.parametrize("path", ["../outside.txt", "a/../../b", "/etc/passwd"])
    def test_escaping_paths_raise(self, tmp_path, path):
        with pytest.raises(PathTraversalError) as exc_info:
            PathValidator(tmp_path).validate(path)
        assert exc_info.value.type == ErrorType.VALIDATION
        assert exc_info.value.allowed_base == str(tmp_path.resolve())

    def test_symlink_escape_is_blocked(self, tmp_path):
        root = tmp_path / "root"
        root.mkdir()
        (root / "link").symlink_to(tmp_path)
        assert PathValidator(root).is_valid("link/secret") is False

    def test_is_valid(self, tmp_path):
        validator = PathValidator(tmp_path)
        assert validator.is_valid("x/y.txt") is True
        assert validator.is_valid("../y.txt") is False
