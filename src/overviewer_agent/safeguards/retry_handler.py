"""Job-level retry policy with exponential backoff."""

from ..core.job import Job
from ..errors import ErrorKind


class RetryHandler:
    """
    Decides whether a failed job goes back on the queue and how long it waits.

    Logic:
    - Only TRANSIENT failures (rate limited, upstream unavailable) are retried
    - Backoff: initial * multiplier^(retry_count-1), capped at max_backoff seconds
    - After max_retries the job is failed permanently
    """

    def __init__(
        self,
        initial_backoff: float = 1.0,
        max_backoff: float = 60.0,
        multiplier: float = 2.0,
        max_retries: int = 5,
    ):
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.multiplier = multiplier
        self.max_retries = max_retries

    def calculate_backoff(self, retry_count: int) -> float:
        """
        Calculate backoff time for given retry count.

        Formula: initial * multiplier^(retry_count-1), capped at max_backoff
        """
        backoff = self.initial_backoff * (self.multiplier ** (max(retry_count, 1) - 1))
        return min(backoff, self.max_backoff)

    def should_retry(self, job: Job, error_kind: ErrorKind) -> bool:
        """Retry transient failures while the job still has budget left."""
        if error_kind != ErrorKind.TRANSIENT:
            return False
        return job.retry_count < self.max_retries

    def next_delay(self, job: Job) -> float:
        """Delay before the next attempt; ``retry_count`` is the count after requeue."""
        return self.calculate_backoff(job.retry_count + 1)
