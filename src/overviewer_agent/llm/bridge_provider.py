"""Claude bridge provider.

Talks to an HTTP bridge exposing an Anthropic-style ``/v1/messages``
endpoint. The response's text blocks are concatenated.
"""

import asyncio
import logging
from typing import List, Optional

import requests

from ..errors import ProviderError
from .base import Message, ProviderAdapter, parse_retry_after

logger = logging.getLogger(__name__)


class ClaudeBridgeProvider(ProviderAdapter):
    """Provider adapter for the Claude HTTP bridge."""

    name = "claude_bridge"

    def __init__(
        self,
        bridge_url: str = "http://localhost:8001",
        model: str = "claude-3-5-sonnet-20241022",
        temperature: float = 0.1,
        max_tokens: int = 4096,
        timeout: int = 120,
        session: Optional[requests.Session] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.bridge_url = bridge_url.rstrip("/")
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.session = session or requests.Session()
        logger.info(f"Claude bridge provider initialized: {self.model} (bridge: {self.bridge_url})")

    async def _complete(self, system_prompt: str, history: List[Message]) -> str:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(
            {"role": "assistant" if m.role == "assistant" else "user", "content": m.content}
            for m in history
        )
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": messages,
        }
        return await asyncio.to_thread(self._post, payload)

    def _post(self, payload: dict) -> str:
        url = f"{self.bridge_url}/v1/messages"
        try:
            response = self.session.post(url, json=payload, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            raise ProviderError(f"Claude bridge unreachable: {e}", network=True) from e

        if response.status_code >= 400:
            raise ProviderError(
                f"HTTP {response.status_code}: {response.text[:500]}",
                status=response.status_code,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )

        blocks = response.json().get("content") or []
        return "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
