"""Cooperative cancellation for a running turn."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import anyio

T = TypeVar("T")


class TurnCancelled(Exception):
    """The token fired before a raced operation finished."""


class CancellationToken:
    """One-shot cancellation flag backed by an :class:`anyio.Event`.

    Must be created inside a running event loop. ``cancel()`` is synchronous
    so it can be called from callbacks and other tasks alike.
    """

    def __init__(self) -> None:
        self._event = anyio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def race(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T:
        """Await ``fn(*args)`` unless the token fires first.

        Raises :class:`TurnCancelled` when cancellation wins. Exceptions
        raised by ``fn`` propagate unchanged.
        """
        outcome: list[T] = []
        failure: list[Exception] = []

        async with anyio.create_task_group() as tg:

            async def _run() -> None:
                try:
                    outcome.append(await fn(*args))
                except Exception as exc:
                    failure.append(exc)
                tg.cancel_scope.cancel()

            async def _watch() -> None:
                await self._event.wait()
                tg.cancel_scope.cancel()

            tg.start_soon(_run)
            tg.start_soon(_watch)

        if failure:
            raise failure[0]
        if not outcome:
            raise TurnCancelled()
        return outcome[0]
