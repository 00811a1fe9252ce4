"""OpenTelemetry-based observability for swot-harness."""

from swotharness.observability.metrics import (
    record_approval,
    record_tokens,
    record_tool_call,
    record_transport_latency,
    reset_instruments,
    timed_operation,
)
from swotharness.observability.tracing import get_tracer, span

__all__ = [
    "get_tracer",
    "record_approval",
    "record_tokens",
    "record_tool_call",
    "record_transport_latency",
    "reset_instruments",
    "span",
    "timed_operation",
]
