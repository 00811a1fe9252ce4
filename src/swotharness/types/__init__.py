"""Type definitions for swot-harness."""

from swotharness.types.blocks import (
    CHART_TYPES,
    BlockType,
    ChartType,
    ContentBlock,
    generate_block_id,
    reset_block_ids,
)
from swotharness.types.config import HarnessConfig
from swotharness.types.messages import (
    AgentMessage,
    AgentState,
    AgentTurnResult,
    ApprovalCallback,
    ToolActivity,
    ToolCallRecord,
    TurnCallbacks,
)
from swotharness.types.providers import (
    LlmRequest,
    LlmResponse,
    LlmToolCall,
    LlmTransport,
    LlmUsage,
)
from swotharness.types.tools import (
    CategoryExecutor,
    RegisteredTool,
    ToolCategory,
    ToolDefinition,
    ToolExecutionOutput,
    ToolExecutor,
)

__all__ = [
    "AgentMessage",
    "AgentState",
    "AgentTurnResult",
    "ApprovalCallback",
    "BlockType",
    "CHART_TYPES",
    "CategoryExecutor",
    "ChartType",
    "ContentBlock",
    "HarnessConfig",
    "LlmRequest",
    "LlmResponse",
    "LlmToolCall",
    "LlmTransport",
    "LlmUsage",
    "RegisteredTool",
    "ToolActivity",
    "ToolCallRecord",
    "ToolCategory",
    "ToolDefinition",
    "ToolExecutionOutput",
    "ToolExecutor",
    "TurnCallbacks",
    "generate_block_id",
    "reset_block_ids",
]
