"""OpenAI transport.

Works against OpenAI and any OpenAI-compatible endpoint (OpenRouter, Groq,
Ollama) through ``base_url``. These APIs have no structured thinking, so
the loop's ``<thinking>`` fallback applies to their output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import openai
from openai import AsyncOpenAI

from swotharness.errors import to_transport_error
from swotharness.providers.base import BaseTransport
from swotharness.types.messages import AgentMessage
from swotharness.types.providers import LlmRequest, LlmResponse, LlmToolCall, LlmUsage

logger = logging.getLogger(__name__)

# Reasoning models take max_completion_tokens instead of max_tokens.
_NEW_TOKEN_PARAM_PREFIXES = ("gpt-5", "o1", "o3", "o4")


@dataclass(slots=True)
class _PartialToolCall:
    id: str = ""
    name: str = ""
    arguments: str = ""


class OpenAITransport(BaseTransport):
    """Transport for OpenAI-compatible chat completion APIs."""

    name = "openai"

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        kwargs: dict[str, Any] = {"api_key": api_key}
        if self._base_url is not None:
            kwargs["base_url"] = self._base_url
        return AsyncOpenAI(**kwargs)

    async def create_chat_completion(self, request: LlmRequest) -> LlmResponse:
        kwargs: dict[str, Any] = {
            "model": request.model_id,
            "messages": self._to_openai_messages(request.messages),
            "stream": True,
            "stream_options": {"include_usage": True},
        }
        if request.tools:
            kwargs["tools"] = [t.to_openai() for t in request.tools]
        max_tokens = self._max_tokens_for(request)
        if request.model_id.lower().startswith(_NEW_TOKEN_PARAM_PREFIXES):
            kwargs["max_completion_tokens"] = max_tokens
        else:
            kwargs["max_tokens"] = max_tokens

        content_parts: list[str] = []
        partials: dict[int, _PartialToolCall] = {}
        usage: LlmUsage | None = None
        finish_reason: str | None = None

        try:
            stream = await self._client_for(request.api_key).chat.completions.create(**kwargs)
            async for chunk in stream:
                # The last chunk carries usage and no choices.
                raw_usage = getattr(chunk, "usage", None)
                if raw_usage is not None:
                    usage = LlmUsage(
                        raw_usage.prompt_tokens or 0, raw_usage.completion_tokens or 0,
                    )
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.finish_reason:
                    finish_reason = choice.finish_reason
                delta = choice.delta

                if delta.content:
                    content_parts.append(delta.content)
                    if request.on_chunk is not None:
                        request.on_chunk(delta.content)
                    if request.on_token is not None:
                        request.on_token(self.estimate_tokens(delta.content))

                for tc in delta.tool_calls or []:
                    partial = partials.setdefault(tc.index, _PartialToolCall())
                    if tc.id:
                        partial.id = tc.id
                    if tc.function is not None:
                        if tc.function.name:
                            partial.name += tc.function.name
                        if tc.function.arguments:
                            partial.arguments += tc.function.arguments
        except openai.APIError as exc:
            raise to_transport_error(exc, self.name) from exc

        tool_calls = tuple(
            LlmToolCall(id=p.id, name=p.name, arguments=p.arguments or "{}")
            for _, p in sorted(partials.items())
        )
        return LlmResponse(
            content="".join(content_parts),
            tool_calls=tool_calls,
            usage=usage,
            finish_reason=finish_reason,
        )

    @staticmethod
    def _to_openai_messages(messages: list[AgentMessage]) -> list[dict[str, Any]]:
        return [msg.to_openai() for msg in messages]
