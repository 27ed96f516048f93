"""Classify failures into retryable and fatal buckets."""

import re
import socket
from typing import Optional

from .exceptions import ErrorKind, OverviewerError

RETRYABLE_STATUSES = {429, 503}


def is_retryable_status(status: Optional[int]) -> bool:
    """429, 503 and any other 5xx are worth retrying."""
    if status is None:
        return False
    return status in RETRYABLE_STATUSES or 500 <= status < 600


class ErrorClassifier:
    """Map an exception to an ``ErrorKind``.

    Resolution order: explicit kind on our own exceptions, HTTP status
    attributes on third-party exceptions, network exception types, and
    finally a pattern table over the message text for errors that arrive
    already stringified (subprocess stderr, wrapped SDK errors).
    """

    TRANSIENT_PATTERNS = [
        r"\b429\b",
        r"\b50[0-9]\b",
        r"rate.?limit",
        r"too many requests",
        r"service unavailable",
        r"overloaded",
        r"timed? ?out",
        r"connection (reset|refused|aborted)",
        r"temporary failure in name resolution",
    ]

    NETWORK_ERRORS = (
        ConnectionError,
        TimeoutError,
        socket.timeout,
    )

    def __init__(self):
        self._patterns = [re.compile(p, re.IGNORECASE) for p in self.TRANSIENT_PATTERNS]

    def classify(self, error: BaseException) -> ErrorKind:
        if isinstance(error, OverviewerError):
            return error.kind

        status = status_of(error)
        if status is not None:
            return ErrorKind.TRANSIENT if is_retryable_status(status) else ErrorKind.FATAL

        if isinstance(error, self.NETWORK_ERRORS):
            return ErrorKind.TRANSIENT

        return self.classify_message(f"{type(error).__name__}: {error}")

    def classify_message(self, message: str) -> ErrorKind:
        for pattern in self._patterns:
            if pattern.search(message):
                return ErrorKind.TRANSIENT
        return ErrorKind.FATAL


def status_of(error: BaseException) -> Optional[int]:
    """Pull an HTTP status off common SDK exceptions (PyGithub, requests, litellm)."""
    for attr in ("status", "status_code"):
        value = getattr(error, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(error, "response", None)
    value = getattr(response, "status_code", None)
    if isinstance(value, int):
        return value
    return None


_default_classifier = ErrorClassifier()


def classify_error(error: BaseException) -> ErrorKind:
    """Classify with the default pattern table."""
    return _default_classifier.classify(error)
