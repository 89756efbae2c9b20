"""LLM client implementations.

All clients implement the LLMClient interface and normalize backend
responses to LLMResponse.
"""

from .base import LLMClient
from .openai_compat import OpenAICompatibleClient

__all__ = [
    "LLMClient",
    "OpenAICompatibleClient",
]
