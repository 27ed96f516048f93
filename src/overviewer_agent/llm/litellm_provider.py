"""LiteLLM provider.

Any LiteLLM-compatible model (OpenAI, OpenRouter, Anthropic, local
gateways) through ``litellm.acompletion``.
"""

import asyncio
import logging
from typing import List, Optional

import litellm

from ..errors import ProviderError
from .base import Message, ProviderAdapter

logger = logging.getLogger(__name__)


class LiteLLMProvider(ProviderAdapter):
    """Provider adapter backed by the litellm library."""

    name = "litellm"
    DEFAULT_TIMEOUT = 120

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: int = 4096,
        timeout: int = DEFAULT_TIMEOUT,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.model = model
        self.api_key = api_key
        self.api_base = api_base
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def _complete(self, system_prompt: str, history: List[Message]) -> str:
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(m.model_dump() for m in history)

        kwargs = {
            "model": self.model,
            "messages": messages,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base

        try:
            response = await asyncio.wait_for(litellm.acompletion(**kwargs), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderError(f"LiteLLM call timed out after {self.timeout} seconds", network=True) from e
        except (litellm.Timeout, litellm.APIConnectionError) as e:
            raise ProviderError(f"LiteLLM connection error: {e}", network=True) from e

        content = response.choices[0].message.content or ""
        usage = getattr(response, "usage", None)
        if usage:
            logger.debug(
                f"{self.model}: {usage.prompt_tokens} in / {usage.completion_tokens} out"
            )
        return content
