"""Entry point for running a single worker process."""

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file into environment before the config is read
load_dotenv()

from .core.agent_loop import AgentLoop
from .core.config import DEFAULT_CONFIG_PATH, OverviewerConfig, load_config
from .core.context_manager import ContextManager
from .core.job import Job
from .core.prompt_builder import PromptBuilder
from .core.worker import Worker
from .indexing import CodeIndex, ToolSimilarityIndex
from .indexing.embeddings import Embedder, VectorStore
from .integrations.github import GitHubClient, InstallationTokenProvider
from .llm import create_provider
from .queue import create_queue
from .safeguards import RetryHandler
from .tools import ToolRegistry, default_tools
from .utils.rich_logging import JobLogger, setup_rich_logging
from .utils.validators import validate_identifier
from .workspace import WorkspaceManager


def build_worker(config: OverviewerConfig, worker_id: str, job_logger: Optional[JobLogger] = None) -> Worker:
    """Wire one worker from configuration."""
    queue = create_queue(config.queue)

    embedder = None
    if config.embeddings.enabled:
        embedder = Embedder(model_name=config.embeddings.model, dimensions=config.embeddings.dimensions)

    tools = default_tools(config.tools)
    matcher = ToolSimilarityIndex(embedder, [(t.name, t.description) for t in tools]) if embedder else None
    registry = ToolRegistry(tools, matcher=matcher, similarity_threshold=config.agent.tool_similarity_threshold)

    workspace_manager = WorkspaceManager(config.workspace, config.github)
    agent_loop = AgentLoop(
        provider=create_provider(config.llm),
        registry=registry,
        context_manager=ContextManager(
            embedder=embedder,
            max_tokens=config.context.max_tokens,
            tokens_per_char=config.context.tokens_per_char,
            keep_ratio=config.context.keep_ratio,
        ),
        prompt_builder=PromptBuilder(),
        workspace_manager=workspace_manager,
        max_iterations=config.agent.max_iterations,
        branch_prefix=config.github.branch_prefix,
        base_branch=config.github.base_branch,
    )

    def github_factory(token: str) -> GitHubClient:
        return GitHubClient(token, api_url=config.github.api_url, timeout=config.github.request_timeout)

    code_index_factory = None
    if embedder is not None and config.embeddings.code_search:
        def code_index_factory(job: Job) -> CodeIndex:
            store_path = Path(config.embeddings.index_dir) / f"{job.repo_owner}__{job.repo_name}"
            return CodeIndex(embedder, VectorStore(store_path, dimensions=config.embeddings.dimensions))

    return Worker(
        worker_id=worker_id,
        queue=queue,
        agent_loop=agent_loop,
        workspace_manager=workspace_manager,
        token_provider=InstallationTokenProvider(config.github),
        retry_handler=RetryHandler(
            initial_backoff=config.queue.backoff_initial,
            max_backoff=config.queue.backoff_max,
            multiplier=config.queue.backoff_multiplier,
            max_retries=config.queue.max_retries,
        ),
        github_factory=github_factory,
        code_index_factory=code_index_factory,
        block_ms=config.queue.block_ms,
        job_logger=job_logger,
    )


def run(worker_id: str, config_path: Path = DEFAULT_CONFIG_PATH) -> None:
    """Run a worker until SIGTERM/SIGINT; the in-flight job is never aborted."""
    worker_id = validate_identifier(worker_id, "worker id")
    config = load_config(config_path)
    job_logger = setup_rich_logging(
        worker_id=worker_id,
        log_dir=config.logging.log_dir,
        log_level=config.logging.level,
        use_file=config.logging.use_file,
    )
    logger = logging.getLogger(__name__)

    worker = build_worker(config, worker_id, job_logger)

    def _handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}, finishing current job")
        worker.stop()

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    logger.info(f"Starting worker {worker_id}")
    asyncio.run(worker.run())


def main():
    """Main entry point for a worker subprocess."""
    if len(sys.argv) < 2:
        print("Usage: python -m overviewer_agent.run_worker <worker_id> [config_path]")
        sys.exit(1)

    config_path = Path(sys.argv[2]) if len(sys.argv) > 2 else DEFAULT_CONFIG_PATH
    try:
        run(sys.argv[1], config_path)
    except Exception as e:
        logging.getLogger(__name__).exception(f"Worker crashed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
