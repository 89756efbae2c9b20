"""Tests for ToolRegistry and the BaseTool contract."""

from typing import Any

import pytest

from conftest import run
from ipuaro.exceptions import IpuaroError
from ipuaro.tools import BaseTool, ToolRegistry, get_default_tools
from ipuaro.tools.base import ToolContext, now_ms
from ipuaro.types import ToolCategory, ToolResult


class EchoTool(BaseTool):
    CATEGORY = ToolCategory.READ

    def __init__(self):
        self.calls = 0

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo the text back"

    @property
    def parameters(self) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "text": {"type": "string", "minLength": 1},
                "times": {"type": "integer", "minimum": 1},
                "mode": {"type": "string", "enum": ["plain", "loud"]},
            },
            "required": ["text"],
        }

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        self.calls += 1
        start = now_ms()
        return self._success(start, params["text"] * params.get("times", 1))


class DangerousTool(EchoTool):
    REQUIRES_CONFIRMATION = True
    CONFIRMATION_MESSAGE = "Really echo {text}?"
    CATEGORY = ToolCategory.EDIT

    @property
    def name(self) -> str:
        return "dangerous"


class BrokenTool(EchoTool):
    @property
    def name(self) -> str:
        return "broken"

    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        raise RuntimeError("exploded")


class TestRegistration:
    """Tests for registry bookkeeping."""

    def test_duplicate_name_raises_and_keeps_original(self):
        original = EchoTool()
        registry = ToolRegistry([original])
        with pytest.raises(IpuaroError, match='Tool "echo" is already registered'):
            registry.register(EchoTool())
        assert registry.get("echo") is original
        assert len(registry) == 1

    def test_lookup_and_filters(self):
        registry = ToolRegistry([EchoTool(), DangerousTool()])
        assert registry.has("echo") and "dangerous" in registry
        assert registry.get_names() == ["echo", "dangerous"]
        assert [t.name for t in registry.get_by_category("edit")] == ["dangerous"]
        assert [t.name for t in registry.get_confirmation_tools()] == ["dangerous"]
        assert [t.name for t in registry.get_safe_tools()] == ["echo"]

    def test_unregister_and_clear(self):
        registry = ToolRegistry([EchoTool(), DangerousTool()])
        assert registry.unregister("echo") is True
        assert registry.unregister("echo") is False
        registry.clear()
        assert len(registry) == 0

    def test_tool_definitions(self):
        definitions = ToolRegistry([EchoTool()]).get_tool_definitions()
        assert definitions[0]["type"] == "function"
        assert definitions[0]["function"]["name"] == "echo"
        assert definitions[0]["function"]["parameters"]["required"] == ["text"]

    def test_default_tools_have_unique_names(self):
        registry = ToolRegistry(get_default_tools())
        assert len(registry) == 18
        assert {t.name for t in registry.get_confirmation_tools()} == {
            "edit_lines", "create_file", "delete_file", "git_commit",
        }


class TestExecute:
    """Tests for the invocation contract of ToolRegistry.execute."""

    def test_unknown_tool(self, make_ctx):
        result = run(ToolRegistry().execute("missing", {}, make_ctx()))
        assert result.success is False
        assert result.error == 'Tool "missing" not found'

    @pytest.mark.parametrize("params,message", [
        ({}, "Parameter 'text' is required"),
        ({"text": 5}, "Parameter 'text' must be a string"),
        ({"text": "  "}, "Parameter 'text' must be a non-empty string"),
        ({"text": "a", "times": True}, "Parameter 'times' must be an integer"),
        ({"text": "a", "times": 0}, "Parameter 'times' must be >= 1"),
        ({"text": "a", "mode": "quiet"}, "Parameter 'mode' must be one of: plain, loud"),
    ])
    def test_validation_errors(self, make_ctx, params, message):
        tool = EchoTool()
        result = run(ToolRegistry([tool]).execute("echo", params, make_ctx()))
        assert result.success is False
        assert result.error == message
        assert tool.calls == 0

    def test_success_sets_call_id(self, make_ctx):
        result = run(ToolRegistry([EchoTool()]).execute("echo", {"text": "ab", "times": 2}, make_ctx()))
        assert result.success is True
        assert result.data == "abab"
        assert result.call_id.startswith("echo-")

    def test_confirmation_denied(self, make_ctx):
        tool = DangerousTool()
        ctx = make_ctx(confirm=False)
        result = run(ToolRegistry([tool]).execute("dangerous", {"text": "x"}, ctx))
        assert result.success is False
        assert result.error == "User cancelled operation"
        assert tool.calls == 0
        assert make_ctx.messages == ["Really echo x?"]

    def test_confirmation_approved(self, make_ctx):
        tool = DangerousTool()
        result = run(ToolRegistry([tool]).execute("dangerous", {"text": "x"}, make_ctx(confirm=True)))
        assert result.success is True
        assert tool.calls == 1

    def test_failing_confirmation_becomes_error_result(self, project_root, storage):
        async def request_confirmation(message: str) -> bool:
            raise EOFError("stdin closed")

        tool = DangerousTool()
        ctx = ToolContext(project_root=project_root, storage=storage, request_confirmation=request_confirmation)
        result = run(ToolRegistry([tool]).execute("dangerous", {"text": "x"}, ctx))
        assert result.success is False
        assert result.error == "Confirmation failed: stdin closed"
        assert result.call_id.startswith("dangerous-")
        assert tool.calls == 0

    def test_exceptions_become_error_results(self, make_ctx):
        result = run(ToolRegistry([BrokenTool()]).execute("broken", {"text": "x"}, make_ctx()))
        assert result.success is False
        assert result.error == "exploded"
        assert result.call_id.startswith("broken-")

    def test_default_confirmation_message(self):
        tool = DangerousTool()
        tool.CONFIRMATION_MESSAGE = ""
        assert tool.get_confirmation_message({"text": "x"}) == 'Execute "dangerous" with params: {"text": "x"}'
