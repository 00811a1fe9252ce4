"""Configuration types for swot-harness."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

DEFAULT_THINKING_BUDGET = 10_000
DEFAULT_APPROVAL_TIMEOUT_MS = 300_000


@dataclass(slots=True)
class HarnessConfig:
    """Settings used by the composition root and the CLI."""

    provider: str = "anthropic"
    model: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    thinking_budget: int = DEFAULT_THINKING_BUDGET
    max_tokens: int = 16384
    approval_timeout_ms: int = DEFAULT_APPROVAL_TIMEOUT_MS
    workspace: str | None = None
    system_prompt: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)
