"""swot-harness — agent execution harness for tool-calling SWOT analysis.

Usage:
    from swotharness import AgentMessage, create_agent_harness
    from swotharness.providers import AnthropicTransport

    harness = create_agent_harness(AnthropicTransport())
    result = await harness.loop.run_turn(
        api_key, "claude-sonnet-4-5",
        [AgentMessage(role="user", content="Analyse our Jira backlog")],
    )
    for block in result.blocks:
        print(block.type, block.id)
"""

from swotharness.approval import (
    ApprovalBroker,
    ApprovalDecision,
    ApprovalGate,
    ApprovalMemory,
    ApprovalMetadata,
)
from swotharness.core import AgentHarness, AgentLoop, create_agent_harness
from swotharness.errors import ErrorCode, HarnessError, TransportError
from swotharness.tools import (
    HandlerExecutor,
    RenderExecutor,
    ToolExecutorRouter,
    ToolRegistry,
)
from swotharness.types import (
    AgentMessage,
    AgentState,
    AgentTurnResult,
    BlockType,
    ContentBlock,
    LlmRequest,
    LlmResponse,
    LlmToolCall,
    LlmUsage,
    ToolActivity,
    ToolCategory,
    ToolDefinition,
    ToolExecutionOutput,
    TurnCallbacks,
)

__version__ = "0.1.0"

__all__ = [
    # Core API
    "AgentHarness",
    "AgentLoop",
    "create_agent_harness",
    # Approval
    "ApprovalBroker",
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalMemory",
    "ApprovalMetadata",
    # Tools
    "HandlerExecutor",
    "RenderExecutor",
    "ToolExecutorRouter",
    "ToolRegistry",
    # Types
    "AgentMessage",
    "AgentState",
    "AgentTurnResult",
    "BlockType",
    "ContentBlock",
    "LlmRequest",
    "LlmResponse",
    "LlmToolCall",
    "LlmUsage",
    "ToolActivity",
    "ToolCategory",
    "ToolDefinition",
    "ToolExecutionOutput",
    "TurnCallbacks",
    # Errors
    "ErrorCode",
    "HarnessError",
    "TransportError",
]
