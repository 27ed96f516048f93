"""Installation access tokens for the GitHub App."""

import logging
import random
import time
from typing import Callable, Optional

from github import Auth, GithubException, GithubIntegration

from ...core.config import GitHubConfig
from ...errors import CredentialError, ErrorKind, classify_error

logger = logging.getLogger(__name__)


class InstallationTokenProvider:
    """
    Mint installation tokens from the App id and private key.

    Retries transient failures (rate limited, 5xx, network) with exponential
    backoff and jitter; credential or permission problems fail immediately.
    A configured static token short-circuits the App flow for local runs.
    """

    def __init__(
        self,
        config: GitHubConfig,
        sleep: Callable[[float], None] = time.sleep,
        rng: Callable[[], float] = random.random,
        jitter: float = 0.2,
    ):
        self.config = config
        self._sleep = sleep
        self._rng = rng
        self.jitter = jitter
        self._integration: Optional[GithubIntegration] = None

    def _get_integration(self) -> GithubIntegration:
        if self._integration is None:
            private_key = self.config.load_private_key()
            if not self.config.app_id or not private_key:
                raise CredentialError("GitHub App credentials are not configured (app_id and private key)")
            self._integration = GithubIntegration(
                auth=Auth.AppAuth(int(self.config.app_id), private_key),
                base_url=self.config.api_url,
                timeout=self.config.request_timeout,
            )
        return self._integration

    def _delay(self, attempt: int) -> float:
        delay = min(self.config.token_initial_delay * (2 ** (attempt - 1)), self.config.token_max_delay)
        return max(delay + delay * self.jitter * (self._rng() * 2 - 1), 0.0)

    def get_token(self, installation_id: int) -> str:
        if self.config.token:
            return self.config.token

        integration = self._get_integration()
        attempts = self.config.token_max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return integration.get_access_token(installation_id).token
            except (GithubException, OSError) as e:
                kind = classify_error(e)
                if kind == ErrorKind.FATAL:
                    raise CredentialError(
                        f"Could not obtain token for installation {installation_id}: {e}"
                    ) from e
                last_error = e
                logger.warning(
                    f"Token request for installation {installation_id} failed "
                    f"(attempt {attempt}/{attempts}): {e}"
                )
                if attempt < attempts:
                    self._sleep(self._delay(attempt))

        raise CredentialError(
            f"Could not obtain token for installation {installation_id} after {attempts} attempts: {last_error}",
            kind=ErrorKind.TRANSIENT,
        )
