"""Tool definition types and executor protocols."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from swotharness.types.blocks import ContentBlock


class ToolCategory(Enum):
    """How the harness treats a tool.

    - RENDER: produces a content block, never needs approval
    - READ: returns text from cached data, never needs approval
    - WRITE: changes an external system, always needs approval
    """

    RENDER = "render"
    READ = "read"
    WRITE = "write"


@dataclass(frozen=True, slots=True)
class ToolDefinition:
    """A tool schema offered to the model."""

    name: str
    description: str
    parameters: dict[str, Any] = field(
        default_factory=lambda: {"type": "object", "properties": {}},
    )

    def to_openai(self) -> dict[str, Any]:
        """Render the OpenAI function-calling envelope."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


@dataclass(frozen=True, slots=True)
class RegisteredTool:
    """A definition together with its category."""

    definition: ToolDefinition
    category: ToolCategory


@dataclass(frozen=True, slots=True)
class ToolExecutionOutput:
    """What an executor hands back for one tool call.

    Render executors fill ``block``; read/write executors fill ``content``.
    """

    block: ContentBlock | None = None
    content: str | None = None


@runtime_checkable
class ToolExecutor(Protocol):
    """A category-specific executor (render, read or write)."""

    async def execute(
        self, tool_name: str, tool_input: dict[str, Any],
    ) -> ToolExecutionOutput:
        """Run the named tool with already-parsed input."""
        ...


@runtime_checkable
class CategoryExecutor(Protocol):
    """Executes any tool given its category (what the loop talks to)."""

    async def execute(
        self, tool_name: str, category: ToolCategory, tool_input: dict[str, Any],
    ) -> ToolExecutionOutput:
        ...
