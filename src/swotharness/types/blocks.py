"""Content blocks: typed, renderable artifacts produced during a turn."""

from __future__ import annotations

import itertools
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class BlockType(Enum):
    """The closed set of block variants a client knows how to render."""

    TEXT = "text"
    THINKING = "thinking"
    SWOT_ANALYSIS = "swot_analysis"
    SUMMARY_CARDS = "summary_cards"
    QUALITY_METRICS = "quality_metrics"
    MERMAID = "mermaid"
    CHART = "chart"
    DATA_TABLE = "data_table"
    COMPARISON = "comparison"
    APPROVAL = "approval"
    ACTION_STATUS = "action_status"


class ChartType(Enum):
    """Chart flavours accepted by ``render_chart``."""

    BAR = "bar"
    LINE = "line"
    PIE = "pie"
    RADAR = "radar"
    DOUGHNUT = "doughnut"


CHART_TYPES: tuple[str, ...] = tuple(c.value for c in ChartType)


class BlockIdGenerator:
    """Issues ids of the form ``block-<epoch ms>-<n>``.

    The counter never repeats within a process, so ids stay unique even when
    two blocks are created in the same millisecond.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counter = itertools.count(1)

    def next_id(self) -> str:
        with self._lock:
            n = next(self._counter)
        return f"block-{int(time.time() * 1000)}-{n}"

    def reset(self) -> None:
        """Restart the counter. Only meant for tests."""
        with self._lock:
            self._counter = itertools.count(1)


_ids = BlockIdGenerator()


def generate_block_id() -> str:
    """Return a new process-unique block id."""
    return _ids.next_id()


def reset_block_ids() -> None:
    """Reset the process-wide block counter (tests only)."""
    _ids.reset()


@dataclass(frozen=True, slots=True)
class ContentBlock:
    """A renderable artifact with a stable id and a type-dependent payload."""

    type: BlockType
    id: str
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, block_type: BlockType, data: dict[str, Any]) -> ContentBlock:
        """Build a block with a freshly generated id."""
        return cls(type=block_type, id=generate_block_id(), data=data)

    def to_dict(self) -> dict[str, Any]:
        """Wire form used by clients."""
        return {"type": self.type.value, "id": self.id, "data": self.data}


def thinking_block(thinking: str) -> ContentBlock:
    return ContentBlock.create(BlockType.THINKING, {"thinking": thinking})
