import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from ..types import ToolCategory, ToolResult, error_result, success_result

if TYPE_CHECKING:
    from ..storage.base import Storage

ConfirmationCallback = Callable[[str], Awaitable[bool]]

_JSON_TYPES: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


async def _deny(_: str) -> bool:
    return False


@dataclass
class ToolContext:
    """Everything a tool may touch while it runs.

    Attributes:
        project_root: Absolute root of the project
        storage: Project index store
        request_confirmation: Async callback asking the user to approve an action
        on_progress: Optional callback for progress messages
    """
    project_root: Path
    storage: "Storage"
    request_confirmation: ConfirmationCallback = _deny
    on_progress: Callable[[str], None] | None = None


def now_ms() -> int:
    return int(time.time() * 1000)


class BaseTool(ABC):
    """Abstract base class for all tools.

    Tools that mutate the project or run arbitrary commands set
    REQUIRES_CONFIRMATION = True; the registry then asks the user before the
    tool body runs. CONFIRMATION_MESSAGE is an optional template formatted
    with the call parameters.
    """

    REQUIRES_CONFIRMATION: bool = False
    CONFIRMATION_MESSAGE: str = ""
    CATEGORY: ToolCategory = ToolCategory.READ

    @property
    @abstractmethod
    def name(self) -> str:
        """Return the tool name."""
        pass

    @property
    @abstractmethod
    def description(self) -> str:
        """Return the tool description."""
        pass

    @property
    @abstractmethod
    def parameters(self) -> dict[str, Any]:
        """Return the JSON schema for tool parameters."""
        pass

    @abstractmethod
    async def execute(self, params: dict[str, Any], ctx: ToolContext) -> ToolResult:
        """Execute the tool with the given parameters."""
        pass

    @property
    def requires_confirmation(self) -> bool:
        return self.REQUIRES_CONFIRMATION

    @property
    def category(self) -> ToolCategory:
        return self.CATEGORY

    def validate_params(self, params: dict[str, Any]) -> str | None:
        """Check params against the JSON schema.

        Covers required keys, primitive types, minLength, minimum and enum,
        which is all the tool schemas use.

        Returns:
            An error message, or None when the params are valid
        """
        properties = self.parameters.get("properties", {})
        for key in self.parameters.get("required", []):
            if params.get(key) is None:
                return f"Parameter '{key}' is required"

        for key, value in params.items():
            schema = properties.get(key)
            if schema is None or value is None:
                continue
            expected = schema.get("type")
            allowed = _JSON_TYPES.get(expected)
            # bool is an int subclass, keep them apart
            if allowed and (not isinstance(value, allowed) or (expected != "boolean" and isinstance(value, bool))):
                article = "an" if expected[0] in "aeiou" else "a"
                return f"Parameter '{key}' must be {article} {expected}"
            if expected == "array" and schema.get("items", {}).get("type") == "string":
                if not all(isinstance(item, str) for item in value):
                    return f"Parameter '{key}' must be an array of strings"
            if "minLength" in schema and len(value.strip()) < schema["minLength"]:
                return f"Parameter '{key}' must be a non-empty string"
            if "minimum" in schema and value < schema["minimum"]:
                return f"Parameter '{key}' must be >= {schema['minimum']}"
            if "enum" in schema and value not in schema["enum"]:
                return f"Parameter '{key}' must be one of: {', '.join(map(str, schema['enum']))}"
        return None

    def get_confirmation_message(self, params: dict[str, Any]) -> str:
        """Format the confirmation summary shown to the user.

        Override this method for more complex confirmation messages.
        """
        if self.CONFIRMATION_MESSAGE:
            try:
                return self.CONFIRMATION_MESSAGE.format(**params)
            except (KeyError, IndexError):
                pass
        return f'Execute "{self.name}" with params: {json.dumps(params, ensure_ascii=False)}'

    def to_schema(self) -> dict[str, Any]:
        """Return the tool schema for LLM function calling."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    # ==================== result helpers ====================

    def _call_id(self, start_ms: int) -> str:
        return f"{self.name}-{start_ms}"

    def _success(self, start_ms: int, data: Any) -> ToolResult:
        return success_result(self._call_id(start_ms), data, now_ms() - start_ms)

    def _error(self, start_ms: int, message: str) -> ToolResult:
        return error_result(self._call_id(start_ms), message, now_ms() - start_ms)
