"""Error taxonomy and retry classification."""

from .classifier import ErrorClassifier, classify_error, is_retryable_status, status_of
from .exceptions import (
    CredentialError,
    ErrorKind,
    InvalidStatusTransition,
    JobNotFoundError,
    NoChangesError,
    OverviewerError,
    PathEscapeError,
    ProviderError,
    ProviderFatalError,
    ProviderRetryExhausted,
    RepositoryError,
    WorkspaceError,
)

__all__ = [
    "CredentialError",
    "ErrorClassifier",
    "ErrorKind",
    "InvalidStatusTransition",
    "JobNotFoundError",
    "NoChangesError",
    "OverviewerError",
    "PathEscapeError",
    "ProviderError",
    "ProviderFatalError",
    "ProviderRetryExhausted",
    "RepositoryError",
    "WorkspaceError",
    "classify_error",
    "is_retryable_status",
    "status_of",
]
