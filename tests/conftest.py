"""Test fixtures including MockTransport for deterministic testing."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any, Union

import pytest

from swotharness.types.blocks import reset_block_ids
from swotharness.types.providers import LlmRequest, LlmResponse, LlmToolCall, LlmUsage

Step = Union[LlmResponse, BaseException, Callable[[LlmRequest], LlmResponse]]


def text_response(
    content: str, usage: tuple[int, int] | None = (100, 50), thinking: str | None = None,
) -> LlmResponse:
    return LlmResponse(
        content=content,
        thinking=thinking,
        usage=LlmUsage(*usage) if usage is not None else None,
        finish_reason="stop",
    )


def tool_response(
    *calls: LlmToolCall, content: str = "", usage: tuple[int, int] | None = (100, 50),
) -> LlmResponse:
    return LlmResponse(
        content=content,
        tool_calls=calls,
        usage=LlmUsage(*usage) if usage is not None else None,
        finish_reason="tool_calls",
    )


def call(call_id: str, name: str, args: dict[str, Any] | str | None = None) -> LlmToolCall:
    """Build a tool call; a str ``args`` is passed through as raw JSON text."""
    if isinstance(args, str):
        return LlmToolCall(id=call_id, name=name, arguments=args)
    return LlmToolCall(id=call_id, name=name, arguments=json.dumps(args or {}))


class MockTransport:
    """A deterministic transport for testing.

    Each call consumes the next scripted step: a response is returned, an
    exception is raised, and a callable is invoked with the request and its
    return value used. Once the script runs out, ``default`` is returned.

    Usage:
        transport = MockTransport([
            tool_response(call("c1", "render_mermaid", {...})),
            text_response("Done."),
        ])
    """

    name = "mock"

    def __init__(
        self,
        steps: list[Step],
        default: LlmResponse | None = None,
        stream_chunks: bool = True,
    ) -> None:
        self._steps = list(steps)
        self._default = default or text_response("(no more scripted responses)")
        self._stream_chunks = stream_chunks
        self.requests: list[LlmRequest] = []

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def create_chat_completion(self, request: LlmRequest) -> LlmResponse:
        self.requests.append(request)
        index = len(self.requests) - 1
        step: Step = self._steps[index] if index < len(self._steps) else self._default

        if isinstance(step, BaseException):
            raise step
        response = step(request) if callable(step) else step

        if self._stream_chunks and response.content:
            if request.on_chunk is not None:
                request.on_chunk(response.content)
            if request.on_token is not None:
                request.on_token(max(1, len(response.content) // 4))
        return response


@pytest.fixture(autouse=True)
def _reset_block_ids() -> None:
    reset_block_ids()


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A temporary workspace with a few report files."""
    (tmp_path / "README.md").write_text("# Reports\n\nSWOT outputs live here.\n")
    reports = tmp_path / "reports"
    reports.mkdir()
    (reports / "q1.md").write_text("Strength: velocity\nWeakness: test debt\n")
    (reports / "q2.csv").write_text("quarter,score\nq2,71\n")
    return tmp_path
