"""ApprovalGate — the approval callback a conversation hands to the loop.

Order of checks for a write call:

1. Remembered approval for (conversation, tool) → approve immediately.
2. Otherwise publish an ``approval`` content block describing the call and
   park on the broker until someone calls :meth:`ApprovalGate.decide` (or
   the broker timer declines it).
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from swotharness.approval.broker import ApprovalBroker, ApprovalMetadata
from swotharness.types.blocks import BlockType, ContentBlock

logger = logging.getLogger(__name__)


def describe_tool_call(tool_name: str, args: dict[str, Any]) -> str:
    """Build a human-readable one-line description of a write call."""
    if tool_name == "write_file" and "path" in args:
        content = args.get("content") or ""
        lines = content.count("\n") + 1 if content else 0
        return f"Write {args['path']} ({lines} lines)"
    if tool_name in ("create_jira_issue", "create_github_issue") and "title" in args:
        return f"Create issue: {args['title']}"
    if tool_name == "create_jira_issues" and isinstance(args.get("issues"), list):
        return f"Create {len(args['issues'])} Jira issues"
    if tool_name == "add_jira_comment" and "issueKey" in args:
        return f"Comment on {args['issueKey']}"
    if tool_name == "create_confluence_page" and "title" in args:
        return f"Create Confluence page: {args['title']}"
    if tool_name == "create_github_pr" and "title" in args:
        return f"Open pull request: {args['title']}"
    args_str = json.dumps(args, default=str)
    if len(args_str) > 80:
        args_str = args_str[:77] + "..."
    return f"{tool_name}({args_str})"


class ApprovalMemory:
    """Per-conversation "yes, and remember" decisions. In memory only."""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], bool] = {}

    def is_tool_approved(self, conversation_id: str, tool_name: str) -> bool:
        return self._entries.get((conversation_id, tool_name), False)

    def remember(self, conversation_id: str, tool_name: str, allowed: bool) -> None:
        self._entries[(conversation_id, tool_name)] = allowed

    def list(self, conversation_id: str) -> dict[str, bool]:
        return {
            tool: allowed
            for (conv, tool), allowed in self._entries.items()
            if conv == conversation_id
        }


class ApprovalGate:
    """Bridges the loop's approval callback to the broker for one conversation."""

    def __init__(
        self,
        broker: ApprovalBroker,
        conversation_id: str,
        memory: ApprovalMemory | None = None,
        on_block: Callable[[ContentBlock], None] | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        self.broker = broker
        self.conversation_id = conversation_id
        self.memory = memory or ApprovalMemory()
        self.on_block = on_block
        self.timeout_ms = timeout_ms

    async def __call__(self, tool_name: str, tool_input: dict[str, Any]) -> bool:
        if self.memory.is_tool_approved(self.conversation_id, tool_name):
            logger.info("Auto-approving remembered tool %s", tool_name)
            return True

        approval_id = str(uuid.uuid4())
        future = self.broker.register(
            approval_id,
            ApprovalMetadata(self.conversation_id, tool_name),
            self.timeout_ms,
        )
        if self.on_block is not None:
            try:
                self.on_block(self.approval_block(approval_id, tool_name, tool_input))
            except Exception:
                logger.exception("Could not publish approval request for %s", tool_name)
                self.broker.resolve(approval_id, False)
                raise

        # Shielded so a cancelled turn leaves the broker entry to its own fate.
        decision = await asyncio.shield(future)
        return decision.approved

    def decide(self, approval_id: str, approved: bool, remember: bool = False) -> bool:
        """Resolve a pending approval; returns False for unknown ids."""
        metadata = self.broker.resolve(approval_id, approved, remember)
        if metadata is None:
            return False
        if remember:
            self.memory.remember(metadata.conversation_id, metadata.tool_name, approved)
        return True

    def approval_block(
        self, approval_id: str, tool_name: str, tool_input: dict[str, Any],
    ) -> ContentBlock:
        return ContentBlock.create(BlockType.APPROVAL, {
            "id": approval_id,
            "conversationId": self.conversation_id,
            "toolName": tool_name,
            "toolInput": tool_input,
            "description": describe_tool_call(tool_name, tool_input),
            "status": "pending",
            "result": None,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "executedAt": None,
        })
