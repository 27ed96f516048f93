"""Worker process: pulls jobs off the queue and runs them end to end."""

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from ..errors import ErrorKind, InvalidStatusTransition, OverviewerError, classify_error
from ..queue import Delivery, JobQueue
from ..safeguards import RetryHandler
from ..utils.rich_logging import JobLogger
from ..workspace import Workspace, WorkspaceManager
from .agent_loop import AgentLoop, AgentState
from .job import Job, JobStatus

logger = logging.getLogger(__name__)

# Upper bound on a single not_before wait slice so shutdown is noticed promptly
_WAIT_SLICE_SECONDS = 1.0
_QUEUE_ERROR_BACKOFF_SECONDS = 5.0


class AgentRunFailed(OverviewerError):
    """The agent loop ended without a finished answer."""

    def __init__(self, message: str, *, kind: ErrorKind, result: dict[str, Any]):
        super().__init__(message)
        self.kind = kind
        self.result = result


class Worker:
    """
    Consumes deliveries one at a time and drives each job to a terminal
    status or back onto the queue.

    Pipeline per delivery: duplicate check, ``not_before`` wait,
    ``in_progress``, fresh workspace, installation token, shallow clone,
    optional code index, agent loop, branch + pull request, ``completed``.

    Retryable failures go back on the queue with backoff until the job's
    retry budget is spent; everything else fails the job permanently. The
    workspace is destroyed whatever happens, and the stream entry is only
    acknowledged once the status record reflects the outcome.
    """

    def __init__(
        self,
        worker_id: str,
        queue: JobQueue,
        agent_loop: AgentLoop,
        workspace_manager: WorkspaceManager,
        token_provider,
        retry_handler: Optional[RetryHandler] = None,
        github_factory: Optional[Callable[[str], Any]] = None,
        code_index_factory: Optional[Callable[[Job], Any]] = None,
        block_ms: int = 5000,
        job_logger: Optional[JobLogger] = None,
        sleep: Callable[[float], Any] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.worker_id = worker_id
        self.queue = queue
        self.agent_loop = agent_loop
        self.workspace_manager = workspace_manager
        self.token_provider = token_provider
        self.retry_handler = retry_handler or RetryHandler(max_retries=queue.max_retries)
        self.github_factory = github_factory
        self.code_index_factory = code_index_factory
        self.block_ms = block_ms
        self.logger = job_logger or JobLogger(logging.getLogger(f"{__name__}.{worker_id}"), worker_id)
        self._sleep = sleep
        self._clock = clock
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def run(self) -> None:
        """Poll until ``stop()``; an in-flight job always runs to completion."""
        self._running = True
        self.logger.info(f"🚀 Starting worker {self.worker_id}")
        await asyncio.to_thread(self.queue.ensure_group)

        while self._running:
            try:
                delivery = await asyncio.to_thread(self.queue.dequeue, self.worker_id, self.block_ms)
            except Exception as e:
                # Backend outage (e.g. Redis restart); keep the process alive and poll again
                self.logger.error(f"Dequeue failed: {e}")
                await self._sleep(_QUEUE_ERROR_BACKOFF_SECONDS)
                continue

            if delivery is None:
                continue

            try:
                await self.handle_delivery(delivery)
            except Exception as e:
                # Entry stays pending and is reclaimed by another consumer after the idle timeout
                self.logger.error(f"Unhandled error for entry {delivery.entry_id}: {e}", exc_info=True)
                self.logger.clear_context()

        self.logger.info(f"Worker {self.worker_id} stopped")

    def stop(self) -> None:
        """Stop polling after the current job."""
        if self._running:
            self.logger.info(f"Stopping worker {self.worker_id}")
        self._running = False

    # ------------------------------------------------------------------
    # Delivery handling
    # ------------------------------------------------------------------

    async def handle_delivery(self, delivery: Delivery) -> Optional[Job]:
        """Process one delivery; returns the final status record, or None when skipped."""
        delivered = delivery.job
        record = await asyncio.to_thread(self.queue.get_job, delivered.id)

        reason = self.stale_reason(record, delivered)
        if reason:
            self.logger.info(f"Skipping entry {delivery.entry_id} for job {delivered.id[:8]}: {reason}")
            await asyncio.to_thread(self.queue.acknowledge, delivery.entry_id)
            return None

        if not await self._wait_until_due(record):
            # Shutting down; leave the entry pending so it is redelivered later
            self.logger.info(f"Shutdown while job {record.id[:8]} waits for its backoff")
            return None

        return await self._process(record, delivery)

    def stale_reason(self, record: Optional[Job], delivered: Job) -> Optional[str]:
        """Why a delivery should be dropped without running, if it should."""
        if record is None:
            return "no status record"
        status = JobStatus(record.status)
        if status in (JobStatus.COMPLETED, JobStatus.CANCELLED):
            return f"already {status.value}"
        if status == JobStatus.FAILED and not self._left_mid_requeue(record):
            return "already failed permanently"
        if record.retry_count > delivered.retry_count:
            return f"superseded by retry {record.retry_count}"
        return None

    def _left_mid_requeue(self, record: Job) -> bool:
        """A failed record still owed a requeue: transient failure with budget left."""
        error_kind = (record.result or {}).get("error_kind")
        return (
            error_kind == ErrorKind.TRANSIENT.value
            and record.retry_count < self.retry_handler.max_retries
        )

    async def _wait_until_due(self, job: Job) -> bool:
        if job.not_before is None:
            return True
        due = job.not_before.timestamp()
        while True:
            remaining = due - self._clock()
            if remaining <= 0:
                return True
            if not self._running:
                return False
            await self._sleep(min(remaining, _WAIT_SLICE_SECONDS))

    async def _process(self, job: Job, delivery: Delivery) -> Optional[Job]:
        started = time.monotonic()
        self.logger.job_started(job.id, job.repo_slug, str(job.task_type), job.retry_count + 1)
        if delivery.reclaimed:
            self.logger.warning(f"Entry {delivery.entry_id} was reclaimed from an idle consumer")

        failure: Optional[Exception] = None
        try:
            if JobStatus(job.status) == JobStatus.FAILED:
                # A crash between the failed write and the requeue left the record behind
                await asyncio.to_thread(self.queue.update_status, job.id, JobStatus.QUEUED)
            await asyncio.to_thread(self.queue.update_status, job.id, JobStatus.IN_PROGRESS)
            result = await self._run_job(job)
        except Exception as e:
            failure = e
        finally:
            await self._destroy_workspace(job.id)

        if failure is not None:
            return await self._handle_failure(job, delivery, failure)

        self.logger.phase_change("finalizing")
        record = await self._finalize(job.id, JobStatus.COMPLETED, delivery.entry_id, result=result)
        self.logger.job_completed(time.monotonic() - started, result["iterations"], result.get("pr_url"))
        return record

    async def _run_job(self, job: Job) -> dict[str, Any]:
        self.logger.phase_change("workspace")
        workspace = await asyncio.to_thread(self.workspace_manager.create, job.id)

        self.logger.phase_change("credentials")
        token = await asyncio.to_thread(self.token_provider.get_token, job.installation_id)
        github = self.github_factory(token) if self.github_factory else None

        self.logger.phase_change("cloning")
        await asyncio.to_thread(self.workspace_manager.clone, workspace, job, token)
        code_search = await self._build_code_index(job, workspace)

        self.logger.phase_change("reasoning")
        agent_result = await self.agent_loop.execute(job, workspace, github=github, code_search=code_search)
        result: dict[str, Any] = {
            "summary": agent_result.summary,
            "iterations": agent_result.iterations,
            "outcome": agent_result.state.value,
        }

        if agent_result.state == AgentState.EXHAUSTED:
            raise AgentRunFailed(agent_result.summary, kind=ErrorKind.FATAL, result=result)
        if agent_result.state == AgentState.ERRORED:
            kind = ErrorKind.TRANSIENT if agent_result.retryable else ErrorKind.FATAL
            raise AgentRunFailed(agent_result.error or agent_result.summary, kind=kind, result=result)

        self.logger.phase_change("creating_pr")
        pr = await self.agent_loop.create_branch_and_pr(job, workspace, github, agent_result.summary, token)
        result.update(
            branch=pr.branch_name,
            pr_url=pr.pr_url,
            pr_number=pr.number,
            outcome="completed",
        )
        return result

    async def _build_code_index(self, job: Job, workspace: Workspace):
        if self.code_index_factory is None:
            return None
        try:
            index = self.code_index_factory(job)
            commit_sha = await asyncio.to_thread(self.workspace_manager.head_commit, workspace)
            indexed = await asyncio.to_thread(index.build, workspace.root, commit_sha)
            self.logger.info(f"Code index ready ({indexed} files)")
            return index
        except Exception:
            self.logger.debug("Codebase indexing failed, continuing without index", exc_info=True)
            return None

    async def _handle_failure(self, job: Job, delivery: Delivery, error: Exception) -> Optional[Job]:
        kind = classify_error(error)
        message = str(error) or type(error).__name__
        result = dict(getattr(error, "result", None) or {"outcome": "errored"})
        result["error_kind"] = kind.value

        current = await asyncio.to_thread(self.queue.get_job, job.id) or job
        will_retry = self.retry_handler.should_retry(current, kind)
        self.logger.job_failed(message, current.retry_count, will_retry)

        if not will_retry:
            if kind == ErrorKind.TRANSIENT:
                message = f"exceeded max retries: {message}"
            return await self._finalize(job.id, JobStatus.FAILED, delivery.entry_id, result=result, error=message)

        delay = self.retry_handler.next_delay(current)
        try:
            failed = await asyncio.to_thread(
                self.queue.update_status, job.id, JobStatus.FAILED, result, message
            )
        except InvalidStatusTransition as e:
            logger.warning(f"Not requeuing job {job.id[:8]}: {e}")
            await asyncio.to_thread(self.queue.acknowledge, delivery.entry_id)
            return await asyncio.to_thread(self.queue.get_job, job.id)
        return await asyncio.to_thread(self.queue.requeue, failed, delay, delivery.entry_id)

    async def _finalize(
        self,
        job_id: str,
        status: JobStatus,
        entry_id: str,
        result: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Optional[Job]:
        try:
            record = await asyncio.to_thread(self.queue.update_status, job_id, status, result, error)
        except InvalidStatusTransition as e:
            # e.g. cancelled by an operator while running; that status stands
            logger.warning(f"Status write rejected for job {job_id[:8]}: {e}")
            record = await asyncio.to_thread(self.queue.get_job, job_id)
        await asyncio.to_thread(self.queue.acknowledge, entry_id)
        return record

    async def _destroy_workspace(self, job_id: str) -> None:
        try:
            await asyncio.to_thread(self.workspace_manager.destroy, job_id)
        except ValueError as e:
            logger.warning(f"Could not destroy workspace for job {job_id!r}: {e}")
