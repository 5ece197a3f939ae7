"""Cooperative cancellation shared by every layer of a generation.

A :class:`CancellationToken` is created once per request and observed
by the retry controller (backoff sleeps), the stream reader (each body
read) and the task poller (each poll and sleep). Cancelling it is
idempotent. Every wait it guards is raced against cancellation, so a
cancelled generation stops at the next suspension point and raises
:class:`GenerationAborted`.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Awaitable
from typing import Any, TypeVar

from vibeflow.resilience.errors import GenerationAborted

T = TypeVar("T")

_EXHAUSTED = object()


class CancellationToken:
    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> bool:
        """Request cancellation. Returns False if already cancelled."""
        if self._event.is_set():
            return False
        self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise GenerationAborted()

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds* unless cancelled first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=seconds)
        except TimeoutError:
            return
        raise GenerationAborted()

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, abandoning it if cancellation wins.

        When both finish together cancellation takes precedence.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait(
                {task, waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for pending in (task, waiter):
                if not pending.done():
                    pending.cancel()
            await asyncio.wait({task, waiter})
        if self._event.is_set():
            if not task.cancelled():
                task.exception()  # mark retrieved
            raise GenerationAborted()
        return task.result()

    async def iterate(
        self, source: AsyncIterable[T]
    ) -> AsyncIterator[T]:
        """Re-yield *source*, racing every step against cancellation."""
        iterator = aiter(source)
        while True:
            item = await self.race(_next_or_sentinel(iterator))
            if item is _EXHAUSTED:
                return
            yield item  # type: ignore[misc]


async def _next_or_sentinel(iterator: AsyncIterator[Any]) -> Any:
    try:
        return await anext(iterator)
    except StopAsyncIteration:
        return _EXHAUSTED
