"""Base provider adapter: conversation in, next agent thought out."""

import asyncio
import json
import logging
import random
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..errors import (
    ErrorClassifier,
    ErrorKind,
    ProviderError,
    ProviderFatalError,
    ProviderRetryExhausted,
    is_retryable_status,
    status_of,
)

logger = logging.getLogger(__name__)


class Message(BaseModel):
    """One conversation turn."""
    role: Literal["system", "user", "assistant"]
    content: str


class ToolAction(BaseModel):
    """Tool invocation requested by the model."""
    tool: str
    parameters: dict[str, Any] = Field(default_factory=dict)


class AgentThought(BaseModel):
    """Structured model output for one reasoning step."""

    model_config = ConfigDict(populate_by_name=True)

    reasoning: str = ""
    action: Optional[ToolAction] = None
    finished: bool = False
    final_answer: Optional[str] = Field(default=None, alias="finalAnswer")

    def to_json(self) -> str:
        return json.dumps(self.model_dump(exclude_none=True))


@dataclass
class RetryPolicy:
    """Exponential backoff with symmetric jitter for upstream calls."""
    max_attempts: int = 5
    initial_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.2

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Delay after the given 1-based failed attempt."""
        delay = min(self.initial_delay * (self.multiplier ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += delay * self.jitter * (rng() * 2 - 1)
        return max(delay, 0.0)


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a Retry-After header (delta seconds or HTTP date)."""
    if not value:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max((when - datetime.now(UTC)).total_seconds(), 0.0)


def translate_exception(error: BaseException) -> ProviderError:
    """Wrap a third-party exception, keeping status and retry hints."""
    if isinstance(error, ProviderError):
        return error

    status = status_of(error)
    retry_after = None
    headers = getattr(getattr(error, "response", None), "headers", None)
    if headers is not None:
        try:
            retry_after = parse_retry_after(headers.get("retry-after"))
        except AttributeError:
            retry_after = None

    message = f"HTTP {status}: {error}" if status is not None else f"{type(error).__name__}: {error}"
    return ProviderError(
        message,
        status=status,
        retry_after=retry_after,
        network=isinstance(error, ErrorClassifier.NETWORK_ERRORS),
    )


class ProviderAdapter(ABC):
    """
    Common retry, rate-limit and parsing policy for model backends.

    Subclasses only implement ``_complete``; they raise ``ProviderError``
    (or let third-party exceptions escape) and this class decides whether
    the failure is worth another attempt.
    """

    name = "provider"

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        min_request_interval: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
        rng: Callable[[], float] = random.random,
    ):
        self.retry_policy = retry_policy or RetryPolicy()
        self.min_request_interval = min_request_interval
        self._sleep = sleep
        self._clock = clock
        self._rng = rng
        self._last_request_at: Optional[float] = None
        self._classifier = ErrorClassifier()

    @abstractmethod
    async def _complete(self, system_prompt: str, history: List[Message]) -> str:
        """Return the raw text of one completion."""

    async def generate_thought(self, system_prompt: str, history: List[Message]) -> AgentThought:
        """
        Ask the model for its next step.

        Raises:
            ProviderFatalError: on a non-retryable failure (first occurrence)
            ProviderRetryExhausted: when every attempt failed with a retryable error
        """
        from .thought_parser import parse_thought

        attempts = self.retry_policy.max_attempts
        last_error: Optional[ProviderError] = None

        for attempt in range(1, attempts + 1):
            await self._enforce_rate_limit()
            try:
                content = await self._complete(system_prompt, history)
            except Exception as e:
                error = translate_exception(e)
                if not self._is_retryable(error):
                    logger.error(f"{self.name} non-retryable error: {error}")
                    raise ProviderFatalError(
                        f"Non-retryable {self.name} error: {error}", status=error.status
                    ) from e
                last_error = error
                logger.warning(f"{self.name} error (attempt {attempt}/{attempts}): {error}")
                if attempt >= attempts:
                    break
                if error.retry_after is not None:
                    delay = error.retry_after
                else:
                    delay = self.retry_policy.delay_for(attempt, self._rng)
                logger.info(f"Retrying {self.name} in {delay:.1f}s")
                await self._sleep(delay)
                continue

            return parse_thought(content)

        raise ProviderRetryExhausted(
            f"{self.name} failed after {attempts} attempts: {last_error}",
            status=last_error.status if last_error else None,
        )

    def _is_retryable(self, error: ProviderError) -> bool:
        if error.network:
            return True
        if error.status is not None:
            return is_retryable_status(error.status)
        return self._classifier.classify_message(str(error)) == ErrorKind.TRANSIENT

    async def _enforce_rate_limit(self) -> None:
        if self._last_request_at is not None:
            elapsed = self._clock() - self._last_request_at
            if elapsed < self.min_request_interval:
                await self._sleep(self.min_request_interval - elapsed)
        self._last_request_at = self._clock()
