"""Anthropic/Claude transport with extended thinking."""

from __future__ import annotations

import json
import logging
from collections import OrderedDict
from typing import Any

import anthropic
from anthropic import AsyncAnthropic

from swotharness.errors import to_transport_error
from swotharness.providers.base import BaseTransport
from swotharness.types.messages import AgentMessage
from swotharness.types.providers import LlmRequest, LlmResponse, LlmToolCall, LlmUsage
from swotharness.types.tools import ToolDefinition

logger = logging.getLogger(__name__)

_MIN_THINKING_BUDGET = 1024
# Tool-call ids whose signed thinking is kept for re-sending; oldest dropped first.
_MAX_CACHED_THINKING = 256


class AnthropicTransport(BaseTransport):
    """Transport for Anthropic's Messages API via the official async SDK.

    When the request carries a thinking budget, extended thinking is enabled
    and streamed ``thinking_delta`` text is returned as the response's
    structured ``thinking``. The API wants the signed thinking blocks echoed
    back on the assistant message that issued tool calls, so they are kept
    per tool-call id and re-attached when the history is converted. The
    table is a small LRU, so only recent tool turns keep their thinking.
    """

    name = "anthropic"

    def __init__(self, base_url: str | None = None, max_tokens: int = 16384) -> None:
        super().__init__(base_url, max_tokens)
        self._thinking_by_tool_call: OrderedDict[str, list[dict[str, Any]]] = OrderedDict()

    def _make_client(self, api_key: str) -> AsyncAnthropic:
        if self._base_url:
            return AsyncAnthropic(api_key=api_key, base_url=self._base_url)
        return AsyncAnthropic(api_key=api_key)

    async def create_chat_completion(self, request: LlmRequest) -> LlmResponse:
        system, messages = self._to_anthropic_messages(request.messages)
        kwargs: dict[str, Any] = {
            "model": request.model_id,
            "max_tokens": self._max_tokens_for(request),
            "messages": messages,
        }
        if system:
            kwargs["system"] = system
        if request.tools:
            kwargs["tools"] = self._to_anthropic_tools(request.tools)
        if request.thinking_budget:
            budget = max(request.thinking_budget, _MIN_THINKING_BUDGET)
            kwargs["thinking"] = {"type": "enabled", "budget_tokens": budget}
            # max_tokens must leave room for the answer after the thinking budget.
            kwargs["max_tokens"] = max(kwargs["max_tokens"], budget + _MIN_THINKING_BUDGET)

        thinking_parts: list[str] = []
        try:
            async with self._client_for(request.api_key).messages.stream(**kwargs) as stream:
                async for event in stream:
                    if event.type != "content_block_delta":
                        continue
                    delta = event.delta
                    if delta.type == "text_delta":
                        if request.on_chunk is not None:
                            request.on_chunk(delta.text)
                        if request.on_token is not None:
                            request.on_token(self.estimate_tokens(delta.text))
                    elif delta.type == "thinking_delta":
                        thinking_parts.append(delta.thinking)
                final = await stream.get_final_message()
        except anthropic.APIError as exc:
            raise to_transport_error(exc, self.name) from exc

        return self._to_response(final, "".join(thinking_parts))

    # ------------------------------------------------------------------
    # Conversion helpers
    # ------------------------------------------------------------------

    def _to_response(self, final: Any, streamed_thinking: str) -> LlmResponse:
        text_parts: list[str] = []
        tool_calls: list[LlmToolCall] = []
        thinking_blocks: list[dict[str, Any]] = []

        for block in final.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(LlmToolCall(
                    id=block.id, name=block.name, arguments=json.dumps(block.input),
                ))
            elif block.type == "thinking":
                thinking_blocks.append({
                    "type": "thinking",
                    "thinking": block.thinking,
                    "signature": block.signature,
                })
            elif block.type == "redacted_thinking":
                thinking_blocks.append({"type": "redacted_thinking", "data": block.data})

        if tool_calls and thinking_blocks:
            self._remember_thinking(tool_calls[0].id, thinking_blocks)

        thinking = streamed_thinking or "".join(
            b["thinking"] for b in thinking_blocks if b["type"] == "thinking"
        )
        return LlmResponse(
            content="".join(text_parts),
            thinking=thinking or None,
            tool_calls=tuple(tool_calls),
            usage=LlmUsage(final.usage.input_tokens, final.usage.output_tokens),
            finish_reason=final.stop_reason,
        )

    def _remember_thinking(self, tool_call_id: str, blocks: list[dict[str, Any]]) -> None:
        cache = self._thinking_by_tool_call
        cache[tool_call_id] = blocks
        cache.move_to_end(tool_call_id)
        while len(cache) > _MAX_CACHED_THINKING:
            evicted, _ = cache.popitem(last=False)
            logger.debug("Dropped cached thinking for tool call %s", evicted)

    def _recall_thinking(self, tool_call_id: str) -> list[dict[str, Any]]:
        blocks = self._thinking_by_tool_call.get(tool_call_id)
        if blocks is None:
            return []
        self._thinking_by_tool_call.move_to_end(tool_call_id)
        return blocks

    def _to_anthropic_messages(
        self, messages: list[AgentMessage],
    ) -> tuple[str, list[dict[str, Any]]]:
        """Split out the system prompt and convert the rest.

        Consecutive ``tool`` messages are folded into one user message of
        ``tool_result`` blocks, which is what the API expects after an
        assistant message with several tool calls.
        """
        system_parts: list[str] = []
        result: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                if msg.content:
                    system_parts.append(msg.content)
                continue

            if msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content or "",
                }
                last = result[-1] if result else None
                if (
                    last is not None
                    and last["role"] == "user"
                    and isinstance(last["content"], list)
                    and all(b.get("type") == "tool_result" for b in last["content"])
                ):
                    last["content"].append(block)
                else:
                    result.append({"role": "user", "content": [block]})
                continue

            if msg.role == "assistant":
                content: list[dict[str, Any]] = []
                if msg.tool_calls:
                    content.extend(self._recall_thinking(msg.tool_calls[0].id))
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls or []:
                    content.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": _parse_input(tc.arguments),
                    })
                result.append({"role": "assistant", "content": content})
                continue

            result.append({"role": "user", "content": msg.content or ""})

        return "\n\n".join(system_parts), result

    @staticmethod
    def _to_anthropic_tools(tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": t.parameters,
            }
            for t in tools
        ]


def _parse_input(arguments: str) -> dict[str, Any]:
    try:
        parsed = json.loads(arguments) if arguments else {}
    except json.JSONDecodeError:
        return {}
    return parsed if isinstance(parsed, dict) else {}
