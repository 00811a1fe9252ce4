"""Human-in-the-loop approval for write tools."""

from swotharness.approval.broker import (
    DECLINED,
    ApprovalBroker,
    ApprovalDecision,
    ApprovalMetadata,
    PendingApproval,
)
from swotharness.approval.gate import ApprovalGate, ApprovalMemory, describe_tool_call

__all__ = [
    "ApprovalBroker",
    "ApprovalDecision",
    "ApprovalGate",
    "ApprovalMemory",
    "ApprovalMetadata",
    "DECLINED",
    "PendingApproval",
    "describe_tool_call",
]
