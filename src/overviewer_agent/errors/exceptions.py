"""Exception hierarchy shared by the queue, agent loop and worker."""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """How the worker should react to a failure."""
    TRANSIENT = "transient"  # Rate limited / upstream unavailable -> requeue with backoff
    FATAL = "fatal"          # Bad credentials, permanent 4xx, workspace I/O -> fail permanently


class OverviewerError(Exception):
    """Base class for errors raised by overviewer-agent."""

    kind: ErrorKind = ErrorKind.FATAL


class ProviderError(OverviewerError):
    """A model backend call failed.

    ``status`` is the upstream HTTP status when one was available and
    ``retry_after`` the upstream retry hint in seconds.
    """

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        retry_after: Optional[float] = None,
        network: bool = False,
    ):
        super().__init__(message)
        self.status = status
        self.retry_after = retry_after
        self.network = network


class ProviderFatalError(ProviderError):
    """Non-retryable provider failure (auth, bad request, unknown model)."""

    kind = ErrorKind.FATAL


class ProviderRetryExhausted(ProviderError):
    """Provider kept failing with retryable errors until the attempt budget ran out."""

    kind = ErrorKind.TRANSIENT


class CredentialError(OverviewerError):
    """Could not obtain an installation token."""

    def __init__(self, message: str, *, kind: ErrorKind = ErrorKind.FATAL):
        super().__init__(message)
        self.kind = kind


class RepositoryError(OverviewerError):
    """Clone, commit, push or pull-request creation failed."""

    def __init__(self, message: str, *, kind: ErrorKind = ErrorKind.FATAL):
        super().__init__(message)
        self.kind = kind


class WorkspaceError(OverviewerError):
    """Workspace could not be created or destroyed."""


class PathEscapeError(WorkspaceError):
    """A tool path resolved outside of the workspace root."""


class NoChangesError(RepositoryError):
    """The agent finished but left no diff to propose."""


class InvalidStatusTransition(OverviewerError):
    """A job status write would break the status state machine."""

    def __init__(self, job_id: str, current: str, target: str):
        super().__init__(f"Job {job_id}: illegal status transition {current} -> {target}")
        self.job_id = job_id
        self.current = current
        self.target = target


class JobNotFoundError(OverviewerError):
    """No status record exists for the requested job id."""
