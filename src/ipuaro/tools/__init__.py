"""Tool implementations for the agent.

All tools inherit from BaseTool and are invoked through ToolRegistry.
"""

from .analysis import GetComplexityTool, GetDependenciesTool, GetDependentsTool, GetTodosTool
from .base import BaseTool, ConfirmationCallback, ToolContext
from .edit import UNDO_KEY, CreateFileTool, DeleteFileTool, EditLinesTool
from .git import GitCommitTool, GitDiffTool, GitStatusTool
from .read import GetClassTool, GetFunctionTool, GetLinesTool, GetStructureTool
from .registry import ToolRegistry
from .run import RunCommandTool, RunTestsTool
from .search import FindDefinitionTool, FindReferencesTool
from .security import (
    CommandClassification,
    CommandSecurity,
    PathValidator,
    SecurityCheckResult,
)


def get_default_tools(
    command_security: CommandSecurity | None = None,
    command_timeout: int = 30,
) -> list[BaseTool]:
    """Return one instance of every built-in tool."""
    return [
        GetLinesTool(),
        GetFunctionTool(),
        GetClassTool(),
        GetStructureTool(),
        EditLinesTool(),
        CreateFileTool(),
        DeleteFileTool(),
        FindDefinitionTool(),
        FindReferencesTool(),
        GetDependenciesTool(),
        GetDependentsTool(),
        GetComplexityTool(),
        GetTodosTool(),
        GitStatusTool(),
        GitDiffTool(),
        GitCommitTool(),
        RunCommandTool(command_security, default_timeout=command_timeout),
        RunTestsTool(),
    ]


__all__ = [
    "BaseTool",
    "CommandClassification",
    "CommandSecurity",
    "ConfirmationCallback",
    "CreateFileTool",
    "DeleteFileTool",
    "EditLinesTool",
    "FindDefinitionTool",
    "FindReferencesTool",
    "GetClassTool",
    "GetComplexityTool",
    "GetDependenciesTool",
    "GetDependentsTool",
    "GetFunctionTool",
    "GetLinesTool",
    "GetStructureTool",
    "GetTodosTool",
    "GitCommitTool",
    "GitDiffTool",
    "GitStatusTool",
    "PathValidator",
    "RunCommandTool",
    "RunTestsTool",
    "SecurityCheckResult",
    "ToolContext",
    "ToolRegistry",
    "UNDO_KEY",
    "get_default_tools",
]
