"""Base class for LLM clients.

The agent only talks to LLMClient. Each backend converts ChatMessage history
and tool schemas to its own wire format and normalizes the reply to an
LLMResponse.
"""

from abc import ABC, abstractmethod
from typing import Any

from ..types import ChatMessage, LLMResponse


class LLMClient(ABC):
    """Abstract base class for all LLM clients."""

    def __init__(self, client_config: dict | None = None):
        """Initialize the client.
        Args:
            client_config: Optional dictionary of configuration parameters
                           (e.g. temperature, max_tokens, etc.)
        """
        self.client_config = client_config or {}

    @abstractmethod
    async def chat(
        self,
        messages: list[ChatMessage],
        tools: list[dict[str, Any]] | None = None,
    ) -> LLMResponse:
        """Send the conversation and return the model's reply.

        Args:
            messages: Conversation history, system prompt first
            tools: Optional function schemas the model may call

        Returns:
            The normalized response

        Raises:
            IpuaroError: Of kind llm, or timeout when the request times out
        """

    def count_tokens(self, text: str) -> int:
        """Rough token estimate, about four characters per token."""
        return len(text) // 4

    @abstractmethod
    async def is_available(self) -> bool:
        """Return True when the backend answers."""

    @abstractmethod
    def abort(self) -> None:
        """Cancel the in-flight request, if any."""
