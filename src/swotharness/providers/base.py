"""Base transport with shared client caching and token estimation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any

from swotharness.types.providers import LlmRequest, LlmResponse

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """Abstract base class for LLM transport adapters.

    The API key travels with each request, so one transport instance can
    serve several accounts. SDK clients are cached per key.

    No retries happen here: a failed call surfaces as a
    :class:`~swotharness.errors.TransportError` and fails the turn.

    Parameters
    ----------
    base_url:
        Optional endpoint override handed to the SDK client.
    max_tokens:
        Upper bound on generated tokens when the request does not set one.
    """

    name: str = "base"

    def __init__(self, base_url: str | None = None, max_tokens: int = 16384) -> None:
        self._base_url = base_url
        self._max_tokens = max_tokens
        self._clients: dict[str, Any] = {}

    def estimate_tokens(self, text: str) -> int:
        """Rough token count, about 4 characters per token, at least 1 for any text."""
        if not text:
            return 0
        return max(1, len(text) // 4)

    def _max_tokens_for(self, request: LlmRequest) -> int:
        if request.max_tokens is not None:
            return request.max_tokens
        return self._max_tokens

    def _client_for(self, api_key: str) -> Any:
        client = self._clients.get(api_key)
        if client is None:
            client = self._make_client(api_key)
            self._clients[api_key] = client
        return client

    @abstractmethod
    def _make_client(self, api_key: str) -> Any:
        """Build the vendor SDK client for ``api_key``."""
        ...

    @abstractmethod
    async def create_chat_completion(self, request: LlmRequest) -> LlmResponse:
        """Stream one completion and return the accumulated response."""
        ...

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base_url={self._base_url!r})"
