"""Agent tools and the registry that dispatches them."""

from .base import (
    CodeSearch,
    RepositoryClient,
    Tool,
    ToolContext,
    ToolMatcher,
    ToolParameter,
    ToolResult,
    WorkspaceAccess,
)
from .registry import ToolRegistry, default_tools

__all__ = [
    "CodeSearch",
    "RepositoryClient",
    "Tool",
    "ToolContext",
    "ToolMatcher",
    "ToolParameter",
    "ToolRegistry",
    "ToolResult",
    "WorkspaceAccess",
    "default_tools",
]
