"""Redis Streams job queue."""

import logging
import time
from contextlib import AbstractContextManager
from typing import Callable, Iterator, Optional

import redis

from ..core.job import Job
from .base import Delivery, JobQueue

logger = logging.getLogger(__name__)

# KEYS[1] delayed set, KEYS[2] stream; ARGV[1] now, ARGV[2] batch size.
# Runs server-side so an entry is never removed from the set without landing on the stream.
PROMOTE_DUE_SCRIPT = """
local due = redis.call("ZRANGEBYSCORE", KEYS[1], "-inf", ARGV[1], "LIMIT", 0, tonumber(ARGV[2]))
local promoted = 0
for _, payload in ipairs(due) do
    if redis.call("ZREM", KEYS[1], payload) == 1 then
        redis.call("XADD", KEYS[2], "*", "job", payload)
        promoted = promoted + 1
    end
end
return promoted
"""
PROMOTE_BATCH = 100


class RedisStreamQueue(JobQueue):
    """
    Job stream on Redis Streams with one consumer group.

    - Entries: ``XADD <stream> * job <json>``
    - Delivery: ``XREADGROUP`` for new entries, ``XAUTOCLAIM`` for entries
      left pending by a consumer that went quiet for ``reclaim_idle_ms``
    - Delayed retries wait in the ``<stream>:delayed`` sorted set (score =
      due time) and are moved onto the stream once due
    - Status side table: ``job:<id>`` hashes
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        url: str = "redis://localhost:6379",
        stream: str = "job-queue",
        group: str = "processors",
        max_retries: int = 5,
        reclaim_idle_ms: int = 600_000,
        key_prefix: str = "job:",
        clock: Callable[[], float] = time.time,
    ):
        super().__init__(max_retries=max_retries, clock=clock)
        self.client = client if client is not None else redis.Redis.from_url(url, decode_responses=True)
        self.stream = stream
        self.group = group
        self.reclaim_idle_ms = reclaim_idle_ms
        self.key_prefix = key_prefix
        self.delayed_key = f"{stream}:delayed"
        self._promote_due = self.client.register_script(PROMOTE_DUE_SCRIPT)

    def ensure_group(self) -> None:
        try:
            self.client.xgroup_create(self.stream, self.group, id="0", mkstream=True)
            logger.info(f"Created consumer group {self.group} on {self.stream}")
        except redis.ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    # ------------------------------------------------------------------
    # Stream
    # ------------------------------------------------------------------

    def _append(self, job: Job, delay: float = 0.0) -> Optional[str]:
        payload = job.model_dump_json()
        if delay > 0:
            self.client.zadd(self.delayed_key, {payload: self._clock() + delay})
            return None
        return self.client.xadd(self.stream, {"job": payload})

    def promote_due(self) -> int:
        """Move due delayed entries onto the stream; returns how many moved."""
        moved = self._promote_due(keys=[self.delayed_key, self.stream], args=[self._clock(), PROMOTE_BATCH])
        return int(moved or 0)

    def dequeue(self, consumer_id: str, block_ms: Optional[int] = None) -> Optional[Delivery]:
        self.promote_due()

        delivery = self._reclaim(consumer_id)
        if delivery is not None:
            return delivery

        # BLOCK 0 means "forever" in Redis; a falsy block_ms means "don't block"
        response = self.client.xreadgroup(
            self.group,
            consumer_id,
            {self.stream: ">"},
            count=1,
            block=block_ms or None,
        )
        if not response:
            return None
        _stream, entries = response[0]
        if not entries:
            return None
        entry_id, fields = entries[0]
        return self._to_delivery(entry_id, fields)

    def _reclaim(self, consumer_id: str) -> Optional[Delivery]:
        if not self.reclaim_idle_ms:
            return None
        result = self.client.xautoclaim(
            self.stream,
            self.group,
            consumer_id,
            min_idle_time=self.reclaim_idle_ms,
            start_id="0-0",
            count=1,
        )
        claimed = result[1] if len(result) > 1 else []
        for entry_id, fields in claimed:
            if not fields:
                # Entry was trimmed from the stream while pending
                self.client.xack(self.stream, self.group, entry_id)
                continue
            logger.warning(f"Reclaimed idle entry {entry_id} for {consumer_id}")
            delivery = self._to_delivery(entry_id, fields, reclaimed=True)
            if delivery is not None:
                return delivery
        return None

    def _to_delivery(self, entry_id: str, fields: dict, reclaimed: bool = False) -> Optional[Delivery]:
        try:
            job = Job.model_validate_json(fields["job"])
        except (KeyError, ValueError) as e:
            logger.error(f"Dropping malformed entry {entry_id}: {e}")
            self.client.xack(self.stream, self.group, entry_id)
            return None
        return Delivery(job=job, entry_id=entry_id, reclaimed=reclaimed)

    def acknowledge(self, entry_id: str) -> None:
        self.client.xack(self.stream, self.group, entry_id)

    def pending_count(self) -> int:
        try:
            summary = self.client.xpending(self.stream, self.group)
        except redis.ResponseError:
            return 0
        return int(summary.get("pending", 0))

    # ------------------------------------------------------------------
    # Status side table
    # ------------------------------------------------------------------

    def _key(self, job_id: str) -> str:
        return f"{self.key_prefix}{job_id}"

    def _load_record(self, job_id: str) -> Optional[Job]:
        data = self.client.hget(self._key(job_id), "data")
        if data is None:
            return None
        try:
            return Job.model_validate_json(data)
        except ValueError as e:
            logger.error(f"Malformed status record for {job_id}: {e}")
            return None

    def _save_record(self, job: Job) -> None:
        self.client.hset(
            self._key(job.id),
            mapping={
                "data": job.model_dump_json(),
                "status": str(getattr(job.status, "value", job.status)),
                "retry_count": job.retry_count,
                "updated_at": job.updated_at.isoformat() if job.updated_at else "",
            },
        )

    def _iter_records(self) -> Iterator[Job]:
        for key in self.client.scan_iter(match=f"{self.key_prefix}*"):
            if self.client.type(key) != "hash":
                continue
            job = self._load_record(key[len(self.key_prefix):])
            if job is not None:
                yield job

    def _record_lock(self, job_id: str) -> AbstractContextManager:
        return self.client.lock(f"lock:{self._key(job_id)}", timeout=30, blocking_timeout=10)
