"""Message, state and result types for the agent turn loop."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from swotharness.types.blocks import ContentBlock


class AgentState(Enum):
    """Externally observed phase of the loop."""

    IDLE = "idle"
    THINKING = "thinking"
    EXECUTING_TOOL = "executing_tool"
    AWAITING_APPROVAL = "awaiting_approval"
    ERROR = "error"


class ToolActivity(Enum):
    """Progress of a single tool execution."""

    STARTED = "started"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    """A tool call as recorded on an assistant message."""

    id: str
    name: str
    arguments: str = "{}"

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


@dataclass(slots=True)
class AgentMessage:
    """One entry in the conversation handed to the transport.

    ``tool_calls`` is only set on assistant messages and ``tool_call_id`` only
    on ``role="tool"`` messages.
    """

    role: str  # "system", "user", "assistant", "tool"
    content: str | None = None
    tool_calls: list[ToolCallRecord] | None = None
    tool_call_id: str | None = None

    def to_openai(self) -> dict[str, Any]:
        """OpenAI chat-completions wire form."""
        msg: dict[str, Any] = {"role": self.role}
        if self.content is not None:
            msg["content"] = self.content
        elif self.role == "assistant":
            msg["content"] = None
        if self.tool_calls:
            msg["tool_calls"] = [tc.to_openai() for tc in self.tool_calls]
        if self.tool_call_id is not None:
            msg["tool_call_id"] = self.tool_call_id
        return msg


@dataclass(frozen=True, slots=True)
class AgentTurnResult:
    """Outcome of one turn.

    ``messages`` is the history the turn ended with: the caller's messages
    plus every assistant and tool message the loop appended, with each tool
    call answered.
    """

    content: str
    blocks: tuple[ContentBlock, ...] = ()
    interrupted: bool = False
    input_tokens: int = 0
    output_tokens: int = 0
    messages: tuple[AgentMessage, ...] = ()


ApprovalCallback = Callable[[str, dict[str, Any]], Awaitable[bool]]


@dataclass(slots=True)
class TurnCallbacks:
    """Notifications fired during a turn.

    All hooks are optional and best-effort: an exception raised by one is
    logged and otherwise ignored. ``on_approval_request`` is the exception,
    it decides whether a write tool runs.
    """

    on_chunk: Callable[[str], None] | None = None
    on_thinking: Callable[[str], None] | None = None
    on_block: Callable[[ContentBlock], None] | None = None
    on_state_change: Callable[[AgentState], None] | None = None
    on_approval_request: ApprovalCallback | None = None
    on_token_count: Callable[[int, int], None] | None = None
    on_tool_activity: Callable[[str, ToolActivity, str | None], None] | None = None
