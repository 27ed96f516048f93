"""Retry safeguards."""

from .retry_handler import RetryHandler

__all__ = ["RetryHandler"]
