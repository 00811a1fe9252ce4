"""ApprovalBroker — parks write-tool approvals until a human decides.

The turn loop awaits the future returned by :meth:`ApprovalBroker.register`;
whoever owns the user interface calls :meth:`ApprovalBroker.resolve` with
the same id once the user clicks approve or reject. Unanswered requests
resolve to "declined" when their timer fires.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from swotharness.types.config import DEFAULT_APPROVAL_TIMEOUT_MS

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ApprovalMetadata:
    """Correlation data handed back to the resolver."""

    conversation_id: str
    tool_name: str


@dataclass(frozen=True, slots=True)
class ApprovalDecision:
    approved: bool
    remember: bool = False


DECLINED = ApprovalDecision(approved=False, remember=False)


@dataclass(slots=True)
class PendingApproval:
    """One outstanding request. Lives only in memory."""

    approval_id: str
    future: asyncio.Future[ApprovalDecision]
    timer: asyncio.TimerHandle
    metadata: ApprovalMetadata
    created_at: float = field(default_factory=time.monotonic)


class ApprovalBroker:
    """Table of outstanding approval requests.

    Every method runs on the event loop thread, so each register, resolve
    and expiry is a single step with respect to the others. At most one of
    them settles a given request; later attempts see no entry.
    """

    def __init__(self, default_timeout_ms: int = DEFAULT_APPROVAL_TIMEOUT_MS) -> None:
        self._default_timeout_ms = default_timeout_ms
        self._pending: dict[str, PendingApproval] = {}

    def register(
        self,
        approval_id: str,
        metadata: ApprovalMetadata,
        timeout_ms: int | None = None,
    ) -> asyncio.Future[ApprovalDecision]:
        """Create a pending request and return the future to await.

        Raises ``ValueError`` if ``approval_id`` is already pending.
        """
        if approval_id in self._pending:
            raise ValueError(f"Approval already pending: {approval_id}")

        loop = asyncio.get_running_loop()
        delay_ms = self._default_timeout_ms if timeout_ms is None else timeout_ms
        future: asyncio.Future[ApprovalDecision] = loop.create_future()
        timer = loop.call_later(max(delay_ms, 0) / 1000, self._expire, approval_id)
        self._pending[approval_id] = PendingApproval(
            approval_id=approval_id,
            future=future,
            timer=timer,
            metadata=metadata,
        )
        logger.debug(
            "Approval %s registered for %s (timeout %d ms)",
            approval_id, metadata.tool_name, delay_ms,
        )
        return future

    def resolve(
        self, approval_id: str, approved: bool, remember: bool = False,
    ) -> ApprovalMetadata | None:
        """Settle a pending request.

        Returns the metadata it was registered with, or ``None`` when the id
        is unknown (already resolved, expired, or owned by another approval
        channel). Unknown ids are not an error.
        """
        entry = self._pending.pop(approval_id, None)
        if entry is None:
            return None
        entry.timer.cancel()
        if not entry.future.done():
            entry.future.set_result(ApprovalDecision(approved, remember))
        logger.debug("Approval %s resolved: approved=%s", approval_id, approved)
        return entry.metadata

    def has_pending(self, approval_id: str) -> bool:
        return approval_id in self._pending

    def pending_count(self) -> int:
        return len(self._pending)

    def _expire(self, approval_id: str) -> None:
        entry = self._pending.pop(approval_id, None)
        if entry is None:
            return
        waited = time.monotonic() - entry.created_at
        logger.warning(
            "Approval %s for %s timed out after %.1fs; treating as declined",
            approval_id, entry.metadata.tool_name, waited,
        )
        if not entry.future.done():
            entry.future.set_result(DECLINED)
