"""ipuaro - a local coding agent with an indexed view of the project.

The agent talks to any OpenAI-compatible LLM (Ollama by default) and works
on the codebase only through the tools in the registry.
"""

from .agent import CodingAgent, TurnResult
from .core import ErrorHandler, Session, StartSession, TurnState, UndoChange
from .exceptions import ErrorOption, ErrorType, IpuaroError
from .indexer import IndexProject
from .tools import CommandSecurity, ToolRegistry
from .types import ChatMessage, LLMResponse, MessageRole, ToolCall, ToolResult

__version__ = "0.1.0"

__all__ = [
    # main agent
    "CodingAgent",
    "TurnResult",
    # core
    "ErrorHandler",
    "IndexProject",
    "Session",
    "StartSession",
    "TurnState",
    "UndoChange",
    "CommandSecurity",
    "ToolRegistry",
    # types
    "ChatMessage",
    "LLMResponse",
    "MessageRole",
    "ToolCall",
    "ToolResult",
    # exceptions
    "ErrorOption",
    "ErrorType",
    "IpuaroError",
]
