"""HandlerExecutor — a read/write executor built from a handler table."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from swotharness.types.tools import ToolExecutionOutput

logger = logging.getLogger(__name__)

ToolHandler = Callable[[dict[str, Any]], Awaitable[str | ToolExecutionOutput]]


class HandlerExecutor:
    """Routes a tool name to the async handler registered for it.

    Handlers return either plain text (the common case for read and write
    tools) or a full :class:`ToolExecutionOutput`. Exceptions are left to
    the turn loop, which turns them into an error result for the model.
    """

    def __init__(self, handlers: Mapping[str, ToolHandler] | None = None) -> None:
        self._handlers: dict[str, ToolHandler] = dict(handlers or {})

    def add(self, name: str, handler: ToolHandler) -> None:
        self._handlers[name] = handler

    def update(self, handlers: Mapping[str, ToolHandler]) -> None:
        self._handlers.update(handlers)

    @property
    def names(self) -> list[str]:
        return list(self._handlers)

    async def execute(
        self, tool_name: str, tool_input: dict[str, Any],
    ) -> ToolExecutionOutput:
        handler = self._handlers.get(tool_name)
        if handler is None:
            logger.debug("No handler for tool %s", tool_name)
            return ToolExecutionOutput(
                content=json.dumps({"error": f"Unknown tool: {tool_name}"}),
            )
        result = await handler(tool_input)
        if isinstance(result, ToolExecutionOutput):
            return result
        return ToolExecutionOutput(content=result)

    def __contains__(self, name: object) -> bool:
        return name in self._handlers

    def __repr__(self) -> str:
        return f"HandlerExecutor({self.names})"
