"""Client for OpenAI-compatible chat completion APIs.

Works with OpenAI itself and with local servers that expose the same API,
such as Ollama's /v1 endpoint (the default).
"""

import asyncio
import json
import time
from contextlib import contextmanager
from typing import Any

from openai import (
    APIConnectionError,
    APIError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    RateLimitError,
)

from ..exceptions import IpuaroError
from ..logging import get_logger
from ..types import ChatMessage, LLMResponse, MessageRole, StopReason, ToolCall
from .base import LLMClient

logger = get_logger(__name__)

SUPPORTED_CONFIG_KEYS = {
    "temperature",
    "top_p",
    "max_tokens",
    "stop",
    "presence_penalty",
    "frequency_penalty",
    "seed",
}


class OpenAICompatibleClient(LLMClient):
    """LLM client speaking the OpenAI chat completions protocol."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 120,
        client_config: dict | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: API base URL, e.g. http://localhost:11434/v1
            model: Model name to use
            api_key: API key; local servers accept any non-empty value
            timeout: Request timeout in seconds
            client_config: Optional sampling parameters
        """
        super().__init__(client_config)
        self.model = model
        self.base_url = base_url
        self.client = AsyncOpenAI(base_url=base_url, api_key=api_key or "none", timeout=timeout)
        self._current: asyncio.Task | None = None

    @contextmanager
    def _handle_api_errors(self):
        """Map openai SDK errors to IpuaroError."""
        try:
            yield
        except APITimeoutError as e:
            raise IpuaroError.llm_timeout(f"LLM request to {self.base_url} timed out") from e
        except AuthenticationError as e:
            raise IpuaroError.llm(f"LLM authentication failed: {e}") from e
        except RateLimitError as e:
            raise IpuaroError.llm("LLM rate limit exceeded") from e
        except APIConnectionError as e:
            raise IpuaroError.llm(f"LLM server unavailable at {self.base_url}: {e}") from e
        except APIError as e:
            raise IpuaroError.llm(f"LLM request failed: {e}") from e

    async def chat(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        api_args: dict[str, Any] = {
            "model": self.model,
            "messages": self._convert_messages(messages),
        }
        if tools:
            api_args["tools"] = tools
            api_args["tool_choice"] = "auto"
        for key, value in self.client_config.items():
            if key in SUPPORTED_CONFIG_KEYS:
                api_args[key] = value

        start = time.monotonic()
        self._current = asyncio.ensure_future(self.client.chat.completions.create(**api_args))
        try:
            with self._handle_api_errors():
                response = await self._current
        finally:
            self._current = None
        return self._parse_response(response, int((time.monotonic() - start) * 1000))

    async def is_available(self) -> bool:
        try:
            with self._handle_api_errors():
                await self.client.models.list()
        except IpuaroError as e:
            logger.info(f"LLM backend not available: {e.message}")
            return False
        return True

    def abort(self) -> None:
        if self._current is not None and not self._current.done():
            logger.info("aborting in-flight LLM request")
            self._current.cancel()

    # ==================== conversion ====================

    def _convert_messages(self, messages: list[ChatMessage]) -> list[dict[str, Any]]:
        return [self._convert_message(msg) for msg in messages]

    def _convert_message(self, message: ChatMessage) -> dict[str, Any]:
        if message.role == MessageRole.ASSISTANT:
            return self._convert_assistant_message(message)
        if message.role == MessageRole.TOOL:
            return {
                "role": "tool",
                "tool_call_id": message.tool_call_id,
                "content": message.content or "",
            }
        return {"role": message.role.value, "content": message.content or ""}

    def _convert_assistant_message(self, message: ChatMessage) -> dict[str, Any]:
        """Convert assistant message handling tool calls."""
        entry: dict[str, Any] = {"role": "assistant", "content": message.content}
        if message.tool_calls:
            entry["tool_calls"] = [
                {
                    "id": tc.id,
                    "type": "function",
                    "function": {
                        "name": tc.name,
                        "arguments": json.dumps(tc.arguments),
                    },
                }
                for tc in message.tool_calls
            ]
        return entry

    def _map_finish_reason(self, reason: str | None) -> StopReason:
        mapping = {
            "stop": StopReason.END,
            "tool_calls": StopReason.TOOL_USE,
            "length": StopReason.LENGTH,
        }
        return mapping.get(reason or "stop", StopReason.END)

    def _parse_arguments(self, raw: str | None) -> dict[str, Any]:
        if not raw:
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise IpuaroError.llm(f"Model returned malformed tool arguments: {raw[:200]}") from e
        return parsed if isinstance(parsed, dict) else {}

    def _parse_response(self, response: Any, time_ms: int) -> LLMResponse:
        if not response.choices:
            raise IpuaroError.llm("LLM returned an empty response")
        choice = response.choices[0]
        message = choice.message

        tool_calls = [
            ToolCall(
                id=tc.id,
                name=tc.function.name,
                arguments=self._parse_arguments(tc.function.arguments),
            )
            for tc in message.tool_calls or []
        ]

        stop_reason = self._map_finish_reason(choice.finish_reason)
        # some local servers report "stop" even when they emitted tool calls
        if tool_calls:
            stop_reason = StopReason.TOOL_USE

        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            tokens=response.usage.total_tokens if response.usage else 0,
            time_ms=time_ms,
            stop_reason=stop_reason,
        )
