"""Work queue contract shared by the file and Redis backends."""

import logging
import time
from abc import ABC, abstractmethod
from collections import Counter
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Callable, Iterator, Optional

from ..core.job import Job, JobStatus
from ..errors import JobNotFoundError

logger = logging.getLogger(__name__)


@dataclass
class Delivery:
    """A stream entry checked out by one consumer."""
    job: Job
    entry_id: str
    reclaimed: bool = False


class JobQueue(ABC):
    """
    Append-only stream of job entries consumed through a consumer group,
    plus a status side table keyed by job id.

    Entries are immutable; a retry appends a new entry for the same job id.
    An entry stays pending from delivery until ``acknowledge``. Status
    writes go through the Job state machine, so an illegal transition
    raises ``InvalidStatusTransition`` instead of being stored.
    """

    def __init__(self, max_retries: int = 5, clock: Callable[[], float] = time.time):
        self.max_retries = max_retries
        self._clock = clock

    # ------------------------------------------------------------------
    # Stream operations (backend specific)
    # ------------------------------------------------------------------

    @abstractmethod
    def ensure_group(self) -> None:
        """Create the consumer group if it does not exist (idempotent)."""

    @abstractmethod
    def _append(self, job: Job, delay: float = 0.0) -> Optional[str]:
        """Append an entry for ``job``; delayed entries may be parked until due."""

    @abstractmethod
    def dequeue(self, consumer_id: str, block_ms: Optional[int] = None) -> Optional[Delivery]:
        """Check out at most one due, unacknowledged entry for ``consumer_id``."""

    @abstractmethod
    def acknowledge(self, entry_id: str) -> None:
        """Mark an entry done for the group (idempotent)."""

    @abstractmethod
    def pending_count(self) -> int:
        """Entries delivered but not yet acknowledged."""

    # ------------------------------------------------------------------
    # Status side table (backend specific)
    # ------------------------------------------------------------------

    @abstractmethod
    def _load_record(self, job_id: str) -> Optional[Job]:
        ...

    @abstractmethod
    def _save_record(self, job: Job) -> None:
        ...

    @abstractmethod
    def _iter_records(self) -> Iterator[Job]:
        ...

    @abstractmethod
    def _record_lock(self, job_id: str) -> AbstractContextManager:
        """Serializes read-modify-write of one status record."""

    # ------------------------------------------------------------------
    # Shared semantics
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self._clock(), UTC)

    def enqueue(self, job: Job) -> str:
        """Record ``job`` as queued and append it to the stream."""
        job.status = JobStatus.QUEUED
        job.updated_at = self._now()
        with self._record_lock(job.id):
            self._save_record(job)
        entry_id = self._append(job)
        logger.info(f"Enqueued job {job.id} ({job.task_type}) for {job.repo_slug} as entry {entry_id}")
        return job.id

    def get_job(self, job_id: str) -> Optional[Job]:
        return self._load_record(job_id)

    def _require(self, job_id: str) -> Job:
        record = self._load_record(job_id)
        if record is None:
            raise JobNotFoundError(f"Job not found: {job_id}")
        return record

    def update_status(
        self,
        job_id: str,
        status: JobStatus,
        result: Optional[dict[str, Any]] = None,
        error: Optional[str] = None,
    ) -> Job:
        """Validated upsert of the status record; repeating the current status is a no-op."""
        status = JobStatus(status)
        with self._record_lock(job_id):
            record = self._require(job_id)
            if status == JobStatus.QUEUED and JobStatus(record.status) == JobStatus.FAILED:
                record.reset_for_retry(max_retries=self.max_retries)
            else:
                record.transition_to(status)
            if result is not None:
                record.result = result
            if error is not None:
                record.last_error = error
            self._save_record(record)
        return record

    def requeue(self, job: Job, backoff_delay: float, entry_id: str) -> Job:
        """
        Put a failed job back on the stream after ``backoff_delay`` seconds.

        Appends a new entry carrying ``retry_count + 1`` and ``not_before``,
        then acknowledges the original entry.
        """
        with self._record_lock(job.id):
            record = self._load_record(job.id) or job.model_copy(deep=True)
            if JobStatus(record.status) == JobStatus.IN_PROGRESS:
                record.mark_failed(job.last_error)
            record.reset_for_retry(
                not_before=self._now() + timedelta(seconds=backoff_delay),
                max_retries=self.max_retries,
            )
            self._save_record(record)

        new_entry = self._append(record, delay=backoff_delay)
        self.acknowledge(entry_id)
        logger.info(
            f"Requeued job {job.id} (retry {record.retry_count}/{self.max_retries}) "
            f"in {backoff_delay:.1f}s as entry {new_entry or 'delayed'}"
        )
        return record

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued job. Returns whether the job is now cancelled."""
        with self._record_lock(job_id):
            record = self._require(job_id)
            current = JobStatus(record.status)
            if current == JobStatus.CANCELLED:
                return True
            if current != JobStatus.QUEUED:
                return False
            record.mark_cancelled("by operator")
            self._save_record(record)
        logger.info(f"Cancelled job {job_id}")
        return True

    def retry(self, job_id: str) -> Job:
        """Operator retry: failed -> queued plus a fresh stream entry."""
        with self._record_lock(job_id):
            record = self._require(job_id)
            record.reset_for_retry(max_retries=self.max_retries)
            self._save_record(record)
        self._append(record)
        logger.info(f"Operator retry for job {job_id} (retry {record.retry_count})")
        return record

    def get_jobs_by_status(self, status: JobStatus) -> list[Job]:
        status = JobStatus(status)
        jobs = [job for job in self._iter_records() if JobStatus(job.status) == status]
        return sorted(jobs, key=lambda job: job.created_at)

    def list_jobs(self, limit: Optional[int] = None) -> list[Job]:
        """Most recently created first."""
        jobs = sorted(self._iter_records(), key=lambda job: job.created_at, reverse=True)
        return jobs[:limit] if limit else jobs

    def stats(self) -> dict[str, int]:
        counts = Counter(JobStatus(job.status).value for job in self._iter_records())
        result = {status.value: counts.get(status.value, 0) for status in JobStatus}
        result["pending_entries"] = self.pending_count()
        return result
