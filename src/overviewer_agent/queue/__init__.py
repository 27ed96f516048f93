"""Durable job queue backends."""

from ..core.config import QueueConfig
from .base import Delivery, JobQueue
from .file_queue import FileStreamQueue
from .locks import FileLock


def create_queue(config: QueueConfig) -> JobQueue:
    """Build the configured backend and make sure its consumer group exists."""
    if config.backend == "redis":
        from .redis_queue import RedisStreamQueue
        queue: JobQueue = RedisStreamQueue(
            url=config.redis_url,
            stream=config.stream,
            group=config.group,
            max_retries=config.max_retries,
            reclaim_idle_ms=config.reclaim_idle_ms,
        )
    else:
        queue = FileStreamQueue(
            root=config.root,
            group=config.group,
            max_retries=config.max_retries,
            reclaim_idle_ms=config.reclaim_idle_ms,
        )
    queue.ensure_group()
    return queue


__all__ = ["Delivery", "FileLock", "FileStreamQueue", "JobQueue", "create_queue"]
