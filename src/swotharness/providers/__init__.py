"""LLM transport adapters."""

from __future__ import annotations

from swotharness.providers.anthropic import AnthropicTransport
from swotharness.providers.base import BaseTransport
from swotharness.providers.openai import OpenAITransport
from swotharness.types.config import HarnessConfig

DEFAULT_MODELS: dict[str, str] = {
    "anthropic": "claude-sonnet-4-5",
    "openai": "gpt-4o",
}

_TRANSPORTS: dict[str, type[BaseTransport]] = {
    "anthropic": AnthropicTransport,
    "openai": OpenAITransport,
}


def create_transport(config: HarnessConfig) -> BaseTransport:
    """Build the transport named by ``config.provider``.

    Raises ``ValueError`` for an unknown provider.
    """
    cls = _TRANSPORTS.get(config.provider)
    if cls is None:
        available = ", ".join(sorted(_TRANSPORTS))
        raise ValueError(f"Unknown provider {config.provider!r}. Available: {available}")
    return cls(base_url=config.base_url, max_tokens=config.max_tokens)


def default_model(provider: str) -> str:
    return DEFAULT_MODELS.get(provider, DEFAULT_MODELS["anthropic"])


__all__ = [
    "AnthropicTransport",
    "BaseTransport",
    "DEFAULT_MODELS",
    "OpenAITransport",
    "create_transport",
    "default_model",
]
