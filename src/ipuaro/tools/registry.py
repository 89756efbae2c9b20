"""Tool registry.

The registry owns the tool set and mediates every invocation. execute()
never raises: whatever goes wrong comes back as a failed ToolResult.
"""

from typing import Any

from ..exceptions import IpuaroError
from ..logging import get_logger
from ..types import ToolCategory, ToolResult, error_result
from .base import BaseTool, ToolContext, now_ms

logger = get_logger(__name__)


class ToolRegistry:
    """Manages registration and execution of tools."""

    def __init__(self, tools: list[BaseTool] | None = None):
        self._tools: dict[str, BaseTool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: BaseTool) -> None:
        """Register a tool.

        Raises:
            IpuaroError: If a tool with the same name is already registered.
        """
        if tool.name in self._tools:
            raise IpuaroError.validation(f'Tool "{tool.name}" is already registered', "name")
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def get_all(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_by_category(self, category: ToolCategory | str) -> list[BaseTool]:
        category = ToolCategory(category)
        return [t for t in self._tools.values() if t.category == category]

    def get_names(self) -> list[str]:
        return list(self._tools)

    def get_confirmation_tools(self) -> list[BaseTool]:
        return [t for t in self._tools.values() if t.requires_confirmation]

    def get_safe_tools(self) -> list[BaseTool]:
        return [t for t in self._tools.values() if not t.requires_confirmation]

    def clear(self) -> None:
        self._tools.clear()

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def get_tool_definitions(self) -> list[dict[str, Any]]:
        """Return the OpenAI function-calling schema of every tool."""
        return [tool.to_schema() for tool in self._tools.values()]

    async def execute(self, name: str, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Execute a tool by name.

        Resolution order: unknown tool, parameter validation, confirmation,
        then the tool body. Each step that fails short-circuits into an
        error result.

        Args:
            name: Tool name.
            params: Tool parameters.
            ctx: Execution context.

        Returns:
            The tool result, carrying a call id of the form "<name>-<start ms>".
        """
        start = now_ms()
        call_id = f"{name}-{start}"

        tool = self._tools.get(name)
        if tool is None:
            return error_result(call_id, f'Tool "{name}" not found', now_ms() - start)

        validation_error = tool.validate_params(params)
        if validation_error:
            logger.debug(f"invalid params for {name}: {validation_error}")
            return error_result(call_id, validation_error, now_ms() - start)

        if tool.requires_confirmation:
            try:
                confirmed = await ctx.request_confirmation(tool.get_confirmation_message(params))
            except Exception as e:
                logger.warning(f"confirmation for {name} failed: {e}")
                return error_result(
                    call_id, f"Confirmation failed: {str(e) or type(e).__name__}", now_ms() - start
                )
            if not confirmed:
                logger.info(f"user declined {name}")
                return error_result(call_id, "User cancelled operation", now_ms() - start)

        try:
            result = await tool.execute(params, ctx)
        except Exception as e:
            logger.warning(f"tool {name} failed: {e}")
            message = e.message if isinstance(e, IpuaroError) else (str(e) or type(e).__name__)
            return error_result(call_id, message, now_ms() - start)

        result.call_id = call_id
        return result
