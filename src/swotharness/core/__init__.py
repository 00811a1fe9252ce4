"""Agent turn loop and its supporting pieces."""

from swotharness.core.cancellation import CancellationToken, TurnCancelled
from swotharness.core.factory import AgentHarness, create_agent_harness
from swotharness.core.loop import (
    DECLINED_MESSAGE,
    INTERRUPTED_MESSAGE,
    MAX_ITERATIONS_NOTICE,
    MAX_LOOP_ITERATIONS,
    AgentLoop,
)
from swotharness.core.thinking import extract_thinking

__all__ = [
    "AgentHarness",
    "AgentLoop",
    "CancellationToken",
    "DECLINED_MESSAGE",
    "INTERRUPTED_MESSAGE",
    "MAX_ITERATIONS_NOTICE",
    "MAX_LOOP_ITERATIONS",
    "TurnCancelled",
    "create_agent_harness",
    "extract_thinking",
]
