"""Metrics recording — token and tool-call counters, transport latency."""

from __future__ import annotations

import time
from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from opentelemetry import metrics

# Lazily-created instruments
_meter: Any = None
_token_counter: Any = None
_tool_call_counter: Any = None
_approval_counter: Any = None
_latency_histogram: Any = None


def _ensure_instruments() -> None:
    """Create meter and instruments on first use."""
    global _meter, _token_counter, _tool_call_counter, _approval_counter
    global _latency_histogram

    if _meter is not None:
        return

    _meter = metrics.get_meter("swotharness")
    _token_counter = _meter.create_counter(
        "swotharness.tokens",
        description="Total tokens consumed",
        unit="tokens",
    )
    _tool_call_counter = _meter.create_counter(
        "swotharness.tool_calls",
        description="Total tool calls executed",
    )
    _approval_counter = _meter.create_counter(
        "swotharness.approvals",
        description="Write-tool approval outcomes",
    )
    _latency_histogram = _meter.create_histogram(
        "swotharness.transport_latency",
        description="LLM transport response latency",
        unit="ms",
    )


def record_tokens(
    input_tokens: int = 0,
    output_tokens: int = 0,
    *,
    transport: str = "",
    model: str = "",
) -> None:
    """Record token usage for one LLM call."""
    _ensure_instruments()
    attrs = {"transport": transport, "model": model}
    _token_counter.add(input_tokens, {"direction": "input", **attrs})
    _token_counter.add(output_tokens, {"direction": "output", **attrs})


def record_tool_call(tool_name: str, category: str, *, is_error: bool = False) -> None:
    _ensure_instruments()
    _tool_call_counter.add(
        1, {"tool": tool_name, "category": category, "error": str(is_error).lower()},
    )


def record_approval(tool_name: str, *, approved: bool) -> None:
    _ensure_instruments()
    _approval_counter.add(1, {"tool": tool_name, "approved": str(approved).lower()})


def record_transport_latency(latency_ms: float, *, transport: str = "", model: str = "") -> None:
    """Record transport response latency in milliseconds."""
    _ensure_instruments()
    _latency_histogram.record(latency_ms, {"transport": transport, "model": model})


@contextmanager
def timed_operation(
    *, transport: str = "", model: str = "",
) -> Generator[None, None, None]:
    """Measure wall-clock time of the block and record it as transport latency."""
    start = time.monotonic()
    try:
        yield
    finally:
        elapsed_ms = (time.monotonic() - start) * 1000
        record_transport_latency(elapsed_ms, transport=transport, model=model)


def reset_instruments() -> None:
    """Reset module-level instruments — useful for test isolation."""
    global _meter, _token_counter, _tool_call_counter, _approval_counter
    global _latency_histogram
    _meter = None
    _token_counter = None
    _tool_call_counter = None
    _approval_counter = None
    _latency_histogram = None
