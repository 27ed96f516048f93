"""Job model and status state machine."""

import uuid
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from ..errors import InvalidStatusTransition


class JobStatus(str, Enum):
    """Job status values."""
    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class TaskType(str, Enum):
    """Closed set of work a producer may request."""
    REFACTOR = "refactor"
    TEST_GENERATION = "test_generation"
    DOCUMENTATION = "documentation"
    DEPENDENCY_UPDATE = "dependency_update"
    CODE_QUALITY = "code_quality"
    BUG_FIX = "bug_fix"
    SECURITY_AUDIT = "security_audit"


class TriggerType(str, Enum):
    """Repository event that produced the job."""
    COMMENT = "comment"
    ISSUE_OPENED = "issue_opened"
    ISSUE_CLOSED = "issue_closed"
    PR_OPENED = "pr_opened"
    PR_CLOSED = "pr_closed"
    PR_REVIEW = "pr_review"
    PUSH = "push"
    SCHEDULE = "schedule"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

# failed -> queued is the retry edge; it is bounded separately by retry_count.
_ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.QUEUED: frozenset({JobStatus.IN_PROGRESS, JobStatus.CANCELLED}),
    JobStatus.IN_PROGRESS: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.FAILED: frozenset({JobStatus.QUEUED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    """Same-status writes are idempotent; everything else follows the table."""
    current, target = JobStatus(current), JobStatus(target)
    return current == target or target in _ALLOWED_TRANSITIONS[current]


def _now() -> datetime:
    return datetime.now(UTC)


class Job(BaseModel):
    """Unit of work tied to one repository event."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    installation_id: int
    repo_owner: str = Field(min_length=1)
    repo_name: str = Field(min_length=1)
    task_type: TaskType
    task_params: dict[str, Any] = Field(default_factory=dict)
    trigger_type: Optional[TriggerType] = None
    commit_sha: Optional[str] = None
    ref_name: Optional[str] = None

    status: JobStatus = JobStatus.QUEUED
    created_at: datetime = Field(default_factory=_now)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    result: Optional[dict[str, Any]] = None
    retry_count: int = 0
    last_error: Optional[str] = None

    # Backoff gate for requeued entries; workers leave the job alone until then
    not_before: Optional[datetime] = None

    @field_serializer("created_at", "started_at", "completed_at", "updated_at", "not_before")
    def serialize_datetime(self, v: Optional[datetime]) -> Optional[str]:
        return v.isoformat() if v else None

    @property
    def repo_slug(self) -> str:
        return f"{self.repo_owner}/{self.repo_name}"

    @property
    def issue_number(self) -> Optional[int]:
        value = self.task_params.get("issueNumber", self.task_params.get("issue_number"))
        if value is None:
            return None
        try:
            return int(value)
        except (TypeError, ValueError):
            return None

    @property
    def is_terminal(self) -> bool:
        return JobStatus(self.status) in TERMINAL_STATUSES

    def transition_to(self, target: JobStatus, *, max_retries: Optional[int] = None) -> None:
        """Move to ``target`` or raise ``InvalidStatusTransition``.

        The failed -> queued edge additionally requires ``retry_count`` to be
        under ``max_retries`` when a limit is given.
        """
        current = JobStatus(self.status)
        target = JobStatus(target)
        if not can_transition(current, target):
            raise InvalidStatusTransition(self.id, current.value, target.value)
        if (
            current == JobStatus.FAILED
            and target == JobStatus.QUEUED
            and max_retries is not None
            and self.retry_count >= max_retries
        ):
            raise InvalidStatusTransition(self.id, current.value, target.value)

        now = _now()
        if target == JobStatus.IN_PROGRESS and self.started_at is None:
            self.started_at = now
        if target in TERMINAL_STATUSES and current != target:
            self.completed_at = now
        self.status = target
        self.updated_at = now

    def mark_in_progress(self) -> None:
        self.transition_to(JobStatus.IN_PROGRESS)

    def mark_completed(self, result: Optional[dict[str, Any]] = None) -> None:
        self.transition_to(JobStatus.COMPLETED)
        if result is not None:
            self.result = result

    def mark_failed(self, error_message: Optional[str] = None, result: Optional[dict[str, Any]] = None) -> None:
        self.transition_to(JobStatus.FAILED)
        if error_message:
            self.last_error = error_message
        if result is not None:
            self.result = result

    def mark_cancelled(self, reason: Optional[str] = None) -> None:
        self.transition_to(JobStatus.CANCELLED)
        self.last_error = f"Cancelled: {reason}" if reason else "Cancelled"

    def reset_for_retry(self, not_before: Optional[datetime] = None, *, max_retries: Optional[int] = None) -> None:
        """Take the failed -> queued edge and bump the retry counter."""
        self.transition_to(JobStatus.QUEUED, max_retries=max_retries)
        self.retry_count += 1
        self.started_at = None
        self.completed_at = None
        self.not_before = not_before
