"""Directory-backed job stream for single-host deployments and tests."""

import json
import logging
import time
from contextlib import AbstractContextManager
from pathlib import Path
from typing import Callable, Iterator, Optional

from pydantic import BaseModel

from ..core.job import Job
from ..utils.atomic_io import atomic_write_model, atomic_write_text
from .base import Delivery, JobQueue
from .locks import FileLock

logger = logging.getLogger(__name__)


class QueueEntry(BaseModel):
    """Immutable stream entry."""
    entry_id: str
    job: Job
    appended_at: float


class PendingRecord(BaseModel):
    """Delivery bookkeeping for an unacknowledged entry."""
    entry_id: str
    consumer: str
    delivered_at: float
    deliveries: int = 1


class FileStreamQueue(JobQueue):
    """
    Job stream stored as JSON files.

    Layout under ``root``::

        stream/<entry_id>.json             immutable entries, ids zero-padded and monotonic
        stream.seq                         last allocated sequence number
        groups/<group>/pending/<id>.json   delivered, unacknowledged entries
        groups/<group>/acked/<id>          acknowledgement markers
        jobs/<job_id>.json                 status side table
        locks/                             mkdir locks
        malformed/                         quarantined files

    Every file is written atomically (temp file + rename). Sequence
    allocation and entry checkout each happen under a ``FileLock`` so any
    number of worker processes can share one root.
    """

    def __init__(
        self,
        root: Path,
        group: str = "processors",
        max_retries: int = 5,
        reclaim_idle_ms: int = 600_000,
        poll_interval: float = 0.2,
        lock_timeout: float = 10.0,
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_retries=max_retries, clock=clock)
        self.root = Path(root)
        self.group = group
        self.reclaim_idle_ms = reclaim_idle_ms
        self.poll_interval = poll_interval
        self.lock_timeout = lock_timeout

        self.stream_dir = self.root / "stream"
        self.seq_file = self.root / "stream.seq"
        self.jobs_dir = self.root / "jobs"
        self.lock_dir = self.root / "locks"
        self.malformed_dir = self.root / "malformed"
        self.group_dir = self.root / "groups" / group
        self.pending_dir = self.group_dir / "pending"
        self.acked_dir = self.group_dir / "acked"

        # Entries known to be acknowledged or quarantined; never rescanned
        self._settled: set[str] = set()

        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        for directory in (self.stream_dir, self.jobs_dir, self.lock_dir, self.malformed_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def ensure_group(self) -> None:
        self.pending_dir.mkdir(parents=True, exist_ok=True)
        self.acked_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def _append(self, job: Job, delay: float = 0.0) -> Optional[str]:
        # Delay is carried by job.not_before; dequeue skips entries not yet due
        with FileLock(self.lock_dir, "stream-append", timeout=self.lock_timeout):
            try:
                last = int(self.seq_file.read_text().strip() or 0)
            except FileNotFoundError:
                last = 0
            entry_id = f"{last + 1:012d}"
            entry = QueueEntry(entry_id=entry_id, job=job, appended_at=self._clock())
            atomic_write_model(self.stream_dir / f"{entry_id}.json", entry)
            atomic_write_text(self.seq_file, str(last + 1))
        return entry_id

    def dequeue(self, consumer_id: str, block_ms: Optional[int] = None) -> Optional[Delivery]:
        self.ensure_group()
        deadline = time.monotonic() + (block_ms or 0) / 1000
        while True:
            delivery = self._checkout(consumer_id)
            if delivery is not None:
                return delivery
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(self.poll_interval, remaining))

    def _checkout(self, consumer_id: str) -> Optional[Delivery]:
        now = self._clock()
        for entry_file in sorted(self.stream_dir.glob("*.json")):
            entry_id = entry_file.stem
            if entry_id in self._settled:
                continue
            if (self.acked_dir / entry_id).exists():
                self._settled.add(entry_id)
                continue
            if self._is_held(entry_id, now):
                continue

            try:
                entry = QueueEntry.model_validate_json(entry_file.read_text())
            except FileNotFoundError:
                continue
            except (json.JSONDecodeError, ValueError) as e:
                self._quarantine(entry_file, e)
                self._settled.add(entry_id)
                continue

            if entry.job.not_before and entry.job.not_before.timestamp() > now:
                continue

            lock = FileLock(self.lock_dir, f"entry-{entry_id}")
            if not lock.acquire():
                continue
            try:
                # Re-check under the lock; another consumer may have won the race
                if (self.acked_dir / entry_id).exists() or self._is_held(entry_id, now):
                    continue
                previous = self._load_pending(entry_id)
                deliveries = previous.deliveries + 1 if previous else 1
                atomic_write_model(
                    self.pending_dir / f"{entry_id}.json",
                    PendingRecord(entry_id=entry_id, consumer=consumer_id, delivered_at=now, deliveries=deliveries),
                )
            finally:
                lock.release()

            if previous is not None:
                logger.warning(
                    f"Reclaimed entry {entry_id} from {previous.consumer} "
                    f"(idle {now - previous.delivered_at:.0f}s)"
                )
            return Delivery(job=entry.job, entry_id=entry_id, reclaimed=previous is not None)
        return None

    def _load_pending(self, entry_id: str) -> Optional[PendingRecord]:
        pending_file = self.pending_dir / f"{entry_id}.json"
        try:
            return PendingRecord.model_validate_json(pending_file.read_text())
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, ValueError) as e:
            self._quarantine(pending_file, e)
            return None

    def _is_held(self, entry_id: str, now: float) -> bool:
        """Delivered to some consumer and not yet idle long enough to reclaim."""
        pending = self._load_pending(entry_id)
        if pending is None:
            return False
        return (now - pending.delivered_at) * 1000 < self.reclaim_idle_ms

    def acknowledge(self, entry_id: str) -> None:
        self.ensure_group()
        (self.acked_dir / entry_id).touch(exist_ok=True)
        (self.pending_dir / f"{entry_id}.json").unlink(missing_ok=True)
        self._settled.add(entry_id)

    def pending_count(self) -> int:
        if not self.pending_dir.exists():
            return 0
        return sum(1 for _ in self.pending_dir.glob("*.json"))

    def _quarantine(self, path: Path, error: Exception) -> None:
        """Move a malformed file aside for investigation."""
        dest = self.malformed_dir / f"{path.parent.name}_{path.name}"
        if dest.exists():
            dest = self.malformed_dir / f"{path.parent.name}_{path.stem}_{int(time.time())}{path.suffix}"
        try:
            path.rename(dest)
            logger.warning(f"Quarantined malformed file: {path} -> {dest} (error: {error})")
        except FileNotFoundError:
            pass
        except OSError as move_error:
            logger.error(f"Failed to quarantine malformed file {path}: {move_error}")

    # ------------------------------------------------------------------
    # Status side table
    # ------------------------------------------------------------------

    def _record_path(self, job_id: str) -> Path:
        return self.jobs_dir / f"{job_id}.json"

    def _load_record(self, job_id: str) -> Optional[Job]:
        path = self._record_path(job_id)
        try:
            return Job.model_validate_json(path.read_text())
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, ValueError) as e:
            self._quarantine(path, e)
            return None

    def _save_record(self, job: Job) -> None:
        atomic_write_model(self._record_path(job.id), job)

    def _iter_records(self) -> Iterator[Job]:
        for path in sorted(self.jobs_dir.glob("*.json")):
            job = self._load_record(path.stem)
            if job is not None:
                yield job

    def _record_lock(self, job_id: str) -> AbstractContextManager:
        return FileLock(self.lock_dir, f"job-{job_id}", timeout=self.lock_timeout)

