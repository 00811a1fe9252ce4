"""Rich-formatted terminal prompt that answers approval blocks."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from swotharness.approval.gate import ApprovalGate
from swotharness.types.blocks import BlockType, ContentBlock

logger = logging.getLogger(__name__)


def _read_line(loop: asyncio.AbstractEventLoop) -> asyncio.Future[str]:
    """Read one line of stdin on a daemon thread.

    Cancelling the returned future abandons the read; the thread never holds
    up event loop or interpreter shutdown.
    """
    future: asyncio.Future[str] = loop.create_future()

    def settle(line: str | None, exc: BaseException | None) -> None:
        if future.done():
            return
        if exc is not None:
            future.set_exception(exc)
        else:
            future.set_result(line or "")

    def read() -> None:
        try:
            line, exc = input(""), None
        except (EOFError, KeyboardInterrupt, OSError) as err:
            line, exc = None, err
        try:
            loop.call_soon_threadsafe(settle, line, exc)
        except RuntimeError:
            logger.debug("Approval answer arrived after the event loop closed")

    threading.Thread(target=read, name="approval-input", daemon=True).start()
    return future


class RichApprovalPrompt:
    """Shows a styled panel for each pending approval and resolves it.

    Wire it as the gate's ``on_block`` listener::

        gate.on_block = RichApprovalPrompt().listener(gate)
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)
        self._tasks: set[asyncio.Task[Any]] = set()

    async def ask(self, tool_name: str, description: str) -> tuple[bool, bool]:
        """Return ``(approved, remember)`` from a y / n / a(lways) answer."""
        title = Text(f" ◆ {tool_name} ", style="bold #fbbf24")
        body = Text(description, style="#94a3b8")

        self._console.print()
        self._console.print(Panel(
            body,
            title=title,
            border_style="#fbbf24",
            expand=False,
            padding=(0, 1),
        ))

        loop = asyncio.get_running_loop()
        prompt_text = (
            "[bold #fbbf24]Allow?[/bold #fbbf24] "
            "[#7c7c8a](y/n/a = always for this conversation)[/#7c7c8a] › "
        )
        try:
            self._console.print(prompt_text, end="")
            answer = await _read_line(loop)
        except (EOFError, KeyboardInterrupt, OSError):
            self._console.print()
            return False, False
        answer = answer.strip().lower()
        if answer in ("a", "always"):
            return True, True
        return answer in ("y", "yes"), False

    def listener(self, gate: ApprovalGate):
        """Build an ``on_block`` callback that answers ``gate``'s approvals."""

        def on_block(block: ContentBlock) -> None:
            if block.type is not BlockType.APPROVAL or block.data.get("status") != "pending":
                return
            task = asyncio.get_running_loop().create_task(self._answer(gate, block))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return on_block

    async def _answer(self, gate: ApprovalGate, block: ContentBlock) -> None:
        approved, remember = await self.ask(
            block.data["toolName"], block.data.get("description", ""),
        )
        gate.decide(block.data["id"], approved, remember)
