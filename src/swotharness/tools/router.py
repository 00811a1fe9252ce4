"""ToolExecutorRouter — sends a tool call to the executor for its category."""

from __future__ import annotations

import json
from typing import Any

from swotharness.types.tools import ToolCategory, ToolExecutionOutput, ToolExecutor


class ToolExecutorRouter:
    """Dispatch table from category to executor.

    Holds no state and applies no approval logic; the loop gates write calls
    before they ever reach here. Read and write executors are optional: a
    call in a category without an executor comes back as a "not configured"
    error for the model instead of failing the turn.
    """

    def __init__(
        self,
        render_executor: ToolExecutor,
        read_executor: ToolExecutor | None = None,
        write_executor: ToolExecutor | None = None,
    ) -> None:
        self._executors: dict[ToolCategory, ToolExecutor | None] = {
            ToolCategory.RENDER: render_executor,
            ToolCategory.READ: read_executor,
            ToolCategory.WRITE: write_executor,
        }

    async def execute(
        self,
        tool_name: str,
        category: ToolCategory,
        tool_input: dict[str, Any],
    ) -> ToolExecutionOutput:
        if category not in self._executors:
            return _error(f"Unknown tool category: {category}")
        executor = self._executors[category]
        if executor is None:
            label = category.value.capitalize()
            return _error(f"{label} tool '{tool_name}' not yet configured")
        return await executor.execute(tool_name, tool_input)

    def has_executor(self, category: ToolCategory) -> bool:
        return self._executors.get(category) is not None

    def __repr__(self) -> str:
        configured = [c.value for c, e in self._executors.items() if e is not None]
        return f"ToolExecutorRouter(configured={configured})"


def _error(message: str) -> ToolExecutionOutput:
    return ToolExecutionOutput(content=json.dumps({"error": message}))
