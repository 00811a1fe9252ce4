"""LLM transport protocol and request/response types."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from swotharness.types.messages import AgentMessage
from swotharness.types.tools import ToolDefinition


@dataclass(frozen=True, slots=True)
class LlmToolCall:
    """A tool call emitted by the model; ``arguments`` is raw JSON text."""

    id: str
    name: str
    arguments: str = "{}"


@dataclass(frozen=True, slots=True)
class LlmUsage:
    """Token usage reported by the transport for a single call."""

    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(slots=True)
class LlmRequest:
    """Everything a transport needs for one chat completion."""

    api_key: str
    model_id: str
    messages: list[AgentMessage]
    tools: list[ToolDefinition] = field(default_factory=list)
    thinking_budget: int | None = None
    max_tokens: int | None = None
    on_chunk: Callable[[str], None] | None = None
    on_token: Callable[[int], None] | None = None


@dataclass(frozen=True, slots=True)
class LlmResponse:
    """The accumulated result of a (possibly streamed) completion."""

    content: str = ""
    thinking: str | None = None
    tool_calls: tuple[LlmToolCall, ...] = ()
    usage: LlmUsage | None = None
    finish_reason: str | None = None


@runtime_checkable
class LlmTransport(Protocol):
    """Protocol every transport adapter implements."""

    @property
    def name(self) -> str:
        ...

    async def create_chat_completion(self, request: LlmRequest) -> LlmResponse:
        """Send the request, stream it, and return the accumulated response."""
        ...
