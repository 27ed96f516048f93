"""GitHub integration."""

from .app_auth import InstallationTokenProvider
from .client import GitHubClient

__all__ = ["GitHubClient", "InstallationTokenProvider"]
