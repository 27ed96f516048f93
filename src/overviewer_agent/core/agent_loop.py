"""Bounded reason/act loop driving the model and the tool registry."""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from ..errors import NoChangesError, ProviderRetryExhausted
from ..llm import Message, ProviderAdapter
from ..tools import CodeSearch, RepositoryClient, ToolContext, ToolRegistry
from ..workspace import Workspace, WorkspaceManager
from .context_manager import ContextManager
from .job import Job
from .prompt_builder import NUDGE_MESSAGE, PromptBuilder

logger = logging.getLogger(__name__)

EXHAUSTED_SUMMARY = "reached maximum iterations"
ERRORED_SUMMARY = "Agent encountered an error"


class AgentState(str, Enum):
    REASONING = "reasoning"
    ACTING = "acting"
    FINISHED = "finished"
    EXHAUSTED = "exhausted"
    ERRORED = "errored"


class AgentResult(BaseModel):
    """Outcome of one ``AgentLoop.execute`` call."""
    success: bool
    summary: str
    iterations: int
    state: AgentState
    error: Optional[str] = None
    retryable: bool = False


@dataclass
class PullRequestRef:
    branch_name: str
    pr_url: str
    number: Optional[int] = None


class AgentLoop:
    """
    Drives the model through at most ``max_iterations`` reasoning calls.

    Each iteration compresses the history, asks the provider for a thought,
    records it, and either finishes or runs the requested tool. Tool
    failures and unknown tool names are reported back to the model as user
    messages; they never end the loop. Provider retry exhaustion ends the
    loop with a retryable ``errored`` result, while non-retryable provider
    errors propagate to the caller.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        registry: Optional[ToolRegistry] = None,
        context_manager: Optional[ContextManager] = None,
        prompt_builder: Optional[PromptBuilder] = None,
        workspace_manager: Optional[WorkspaceManager] = None,
        max_iterations: int = 12,
        branch_prefix: str = "overviewer-agent",
        base_branch: Optional[str] = None,
    ):
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
        self.provider = provider
        self.registry = registry or ToolRegistry()
        self.context_manager = context_manager or ContextManager()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self.workspace_manager = workspace_manager or WorkspaceManager()
        self.max_iterations = max_iterations
        self.branch_prefix = branch_prefix
        self.base_branch = base_branch

    async def execute(
        self,
        job: Job,
        workspace: Workspace,
        github: Optional[RepositoryClient] = None,
        code_search: Optional[CodeSearch] = None,
    ) -> AgentResult:
        system_prompt = self.prompt_builder.build_system_prompt(self.registry.describe())
        goal = self.prompt_builder.build_task_prompt(job)
        history: list[Message] = [Message(role="user", content=goal)]
        context = ToolContext(
            workspace=workspace,
            repo_owner=job.repo_owner,
            repo_name=job.repo_name,
            issue_number=job.issue_number,
            repo=github,
            code_search=code_search,
        )

        iterations = 0
        state = AgentState.REASONING
        final_answer = ""

        while iterations < self.max_iterations:
            iterations += 1
            state = AgentState.REASONING
            logger.info(f"Agent iteration {iterations}/{self.max_iterations} for job {job.id[:8]}")

            window = await asyncio.to_thread(self.context_manager.compress_history, history, goal)
            try:
                thought = await self.provider.generate_thought(system_prompt, window)
            except ProviderRetryExhausted as e:
                logger.warning(f"Provider unavailable after retries: {e}")
                return AgentResult(
                    success=False,
                    summary=ERRORED_SUMMARY,
                    iterations=iterations,
                    state=AgentState.ERRORED,
                    error=str(e),
                    retryable=True,
                )

            logger.debug(f"Reasoning: {thought.reasoning}")
            history.append(Message(role="assistant", content=thought.to_json()))

            if thought.finished:
                final_answer = thought.final_answer or "Task completed"
                state = AgentState.FINISHED
                logger.info(f"Agent finished: {final_answer}")
                break

            if thought.action is None:
                history.append(Message(role="user", content=NUDGE_MESSAGE))
                continue

            state = AgentState.ACTING
            requested = thought.action.tool
            tool = await asyncio.to_thread(self.registry.resolve, requested)
            if tool is None:
                logger.warning(f"Unknown tool requested: {requested}")
                history.append(Message(role="user", content=self.registry.unknown_tool_message(requested)))
                continue

            logger.info(f"Executing tool: {tool.name}")
            result = await tool.execute(thought.action.parameters, context)
            if result.error:
                logger.info(f"Tool {tool.name} failed: {result.error}")
            history.append(Message(role="user", content=result.render(tool.name)))

        if state != AgentState.FINISHED:
            return AgentResult(
                success=False,
                summary=EXHAUSTED_SUMMARY,
                iterations=iterations,
                state=AgentState.EXHAUSTED,
            )

        return AgentResult(success=True, summary=final_answer, iterations=iterations, state=AgentState.FINISHED)

    def branch_name_for(self, job: Job) -> str:
        """Deterministic per job, so redeliveries reuse the same branch."""
        return f"{self.branch_prefix}/{job.task_type}-{job.id[:8]}"

    async def create_branch_and_pr(
        self,
        job: Job,
        workspace: Workspace,
        github,
        summary: str,
        token: str,
    ) -> PullRequestRef:
        return await asyncio.to_thread(self._create_branch_and_pr, job, workspace, github, summary, token)

    def _create_branch_and_pr(self, job: Job, workspace: Workspace, github, summary: str, token: str) -> PullRequestRef:
        manager = self.workspace_manager
        if not manager.has_changes(workspace):
            raise NoChangesError("Agent finished without changing any files")

        branch_name = self.branch_name_for(job)
        title = self.prompt_builder.pr_title(job)
        manager.create_branch(workspace, branch_name)
        manager.commit_all(workspace, f"{title}\n\n{summary}")
        manager.push(workspace, job, branch_name, token)

        base = self.base_branch or github.get_default_branch(job.repo_owner, job.repo_name)
        pr = github.create_pull_request(
            job.repo_owner,
            job.repo_name,
            title=title,
            body=self.prompt_builder.pr_body(job, summary),
            head_branch=branch_name,
            base_branch=base,
        )
        logger.info(f"Opened PR {pr.html_url} from {branch_name}")
        return PullRequestRef(branch_name=branch_name, pr_url=pr.html_url, number=pr.number)
