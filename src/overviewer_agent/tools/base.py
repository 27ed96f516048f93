"""Tool contract and the capability set tools run against."""

import asyncio
import logging
from abc import ABC
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ToolParameter(BaseModel):
    """One named parameter in a tool's schema."""
    type: str
    description: str
    required: bool = False


class ToolResult(BaseModel):
    """Outcome of a tool invocation. Tools report failure here instead of raising."""
    success: bool
    output: str = ""
    error: Optional[str] = None

    @classmethod
    def ok(cls, output: str) -> "ToolResult":
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str, output: str = "") -> "ToolResult":
        return cls(success=False, output=output, error=error)

    def render(self, tool_name: str) -> str:
        """Conversation message reporting this result to the model."""
        text = (
            f"Tool: {tool_name}\n"
            f"Result: {'Success' if self.success else 'Failed'}\n"
            f"Output:\n{self.output}"
        )
        if self.error:
            text += f"\nError: {self.error}"
        return text


class WorkspaceAccess(Protocol):
    root: Path

    def resolve(self, relative: str) -> Path:
        """Absolute path inside the workspace; raises ``PathEscapeError`` otherwise."""
        ...


class RepositoryClient(Protocol):
    def comment_on_issue(self, owner: str, repo: str, issue_number: int, body: str) -> str:
        ...


class CodeSearch(Protocol):
    def search_code(self, query: str, limit: int = 5) -> list[tuple[str, float]]:
        ...


class ToolMatcher(Protocol):
    def find_similar(self, probe: str, limit: int = 1) -> list[tuple[str, float]]:
        ...


@dataclass
class ToolContext:
    """What a tool may touch while serving one job."""
    workspace: WorkspaceAccess
    repo_owner: str
    repo_name: str
    issue_number: Optional[int] = None
    repo: Optional[RepositoryClient] = None
    code_search: Optional[CodeSearch] = None


class Tool(ABC):
    """
    Base class for agent tools.

    Subclasses declare ``name``, ``description`` and ``parameters`` and
    implement either ``run`` (async) or ``run_sync`` (blocking, executed in
    a worker thread). ``execute`` validates required parameters and turns
    every exception into a failed ``ToolResult``.
    """

    name: str = ""
    description: str = ""
    parameters: dict[str, ToolParameter] = {}

    async def execute(self, params: Any, context: ToolContext) -> ToolResult:
        if params is None:
            params = {}
        if not isinstance(params, dict):
            return ToolResult.fail(f"Parameters for {self.name} must be an object")

        missing = [
            name for name, param in self.parameters.items()
            if param.required and params.get(name) is None
        ]
        if missing:
            return ToolResult.fail(f"Missing required parameter(s): {', '.join(missing)}")

        try:
            return await self.run(params, context)
        except Exception as e:
            logger.debug(f"Tool {self.name} failed", exc_info=True)
            return ToolResult.fail(str(e) or type(e).__name__)

    async def run(self, params: dict, context: ToolContext) -> ToolResult:
        return await asyncio.to_thread(self.run_sync, params, context)

    def run_sync(self, params: dict, context: ToolContext) -> ToolResult:
        raise NotImplementedError(f"{type(self).__name__} implements neither run nor run_sync")

    def describe(self) -> str:
        """Catalog entry used in the system prompt."""
        lines = [f"- {self.name}: {self.description}"]
        for name, param in self.parameters.items():
            flag = "required" if param.required else "optional"
            lines.append(f"    - {name} ({param.type}, {flag}): {param.description}")
        return "\n".join(lines)
