"""Tool catalog with exact lookup and similarity fallback."""

import logging
from typing import Iterable, Optional

from ..core.config import ToolsConfig
from .base import Tool, ToolContext, ToolMatcher, ToolResult
from .filesystem import DeleteFileTool, ListDirectoryTool, MoveFileTool, ReadFileTool, WriteFileTool
from .github import CommentOnIssueTool
from .search import SearchCodeTool, SemanticSearchTool
from .shell import RunCommandTool

logger = logging.getLogger(__name__)


def default_tools(config: Optional[ToolsConfig] = None) -> list[Tool]:
    """The built-in catalog, in prompt order."""
    config = config or ToolsConfig()
    return [
        ReadFileTool(max_bytes=config.max_read_bytes),
        WriteFileTool(),
        ListDirectoryTool(),
        MoveFileTool(),
        DeleteFileTool(),
        RunCommandTool(
            default_timeout=config.command_timeout,
            max_timeout=config.max_command_timeout,
            max_output_bytes=config.max_output_bytes,
        ),
        SearchCodeTool(),
        SemanticSearchTool(),
        CommentOnIssueTool(),
    ]


class ToolRegistry:
    """
    Name -> tool mapping used by the agent loop.

    ``resolve`` tries an exact match first. On a miss it asks the optional
    ``ToolMatcher`` for the closest catalog entry and accepts it when the
    score reaches ``similarity_threshold``. A failing matcher counts as no
    match.
    """

    def __init__(
        self,
        tools: Optional[Iterable[Tool]] = None,
        matcher: Optional[ToolMatcher] = None,
        similarity_threshold: float = 0.7,
    ):
        self._tools: dict[str, Tool] = {}
        self.matcher = matcher
        self.similarity_threshold = similarity_threshold
        for tool in tools if tools is not None else default_tools():
            self.register(tool)

    def register(self, tool: Tool) -> "ToolRegistry":
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        return self

    def get(self, name: str) -> Optional[Tool]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def catalog(self) -> list[tuple[str, str]]:
        return [(tool.name, tool.description) for tool in self._tools.values()]

    def describe(self) -> str:
        return "\n".join(tool.describe() for tool in self._tools.values())

    def resolve(self, name: str) -> Optional[Tool]:
        tool = self._tools.get(name)
        if tool is not None or self.matcher is None:
            return tool

        try:
            candidates = self.matcher.find_similar(name, limit=1)
        except Exception as e:
            logger.warning(f"Tool matcher failed for '{name}': {e}")
            return None
        if not candidates:
            return None

        best, score = candidates[0]
        if score >= self.similarity_threshold and best in self._tools:
            logger.info(f"Resolved unknown tool '{name}' to '{best}' (similarity {score:.2f})")
            return self._tools[best]
        logger.debug(f"No tool close enough to '{name}' (best '{best}' at {score:.2f})")
        return None

    def unknown_tool_message(self, name: str) -> str:
        return f"Error: Unknown tool: {name}. Available tools: {', '.join(self.names())}"

    async def execute(self, name: str, params: dict, context: ToolContext) -> ToolResult:
        tool = self.resolve(name)
        if tool is None:
            return ToolResult.fail(self.unknown_tool_message(name))
        return await tool.execute(params, context)
