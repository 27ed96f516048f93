"""Model provider adapters."""

from enum import Enum

from ..core.config import LLMConfig
from .base import AgentThought, Message, ProviderAdapter, RetryPolicy, ToolAction
from .thought_parser import parse_thought

# Concrete providers are imported lazily so that tests and the CLI do not
# pay for importing litellm.


class ProviderKind(str, Enum):
    LITELLM = "litellm"
    CLAUDE_BRIDGE = "claude_bridge"


def create_provider(config: LLMConfig, **kwargs) -> ProviderAdapter:
    """Build the configured provider once at worker startup."""
    kind = ProviderKind(config.provider)
    retry_policy = RetryPolicy(
        max_attempts=config.max_attempts,
        initial_delay=config.initial_delay,
        max_delay=config.max_delay,
        multiplier=config.backoff_multiplier,
        jitter=config.jitter,
    )
    common = dict(
        model=config.model,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        timeout=config.timeout,
        retry_policy=retry_policy,
        min_request_interval=config.min_request_interval,
        **kwargs,
    )

    if kind == ProviderKind.CLAUDE_BRIDGE:
        from .bridge_provider import ClaudeBridgeProvider
        return ClaudeBridgeProvider(bridge_url=config.bridge_url, **common)

    from .litellm_provider import LiteLLMProvider
    return LiteLLMProvider(api_key=config.api_key, api_base=config.api_base, **common)


__all__ = [
    "AgentThought",
    "Message",
    "ProviderAdapter",
    "ProviderKind",
    "RetryPolicy",
    "ToolAction",
    "create_provider",
    "parse_thought",
]
