"""Typed events emitted while a generation runs.

Adapters, the task poller and the coordinator all speak the same
pull-based protocol: an async iterator of :data:`StreamEvent`. A
successful stream ends with exactly one :class:`DoneEvent`; failures
are raised as typed exceptions by adapters and turned into a single
:class:`ErrorEvent` by the coordinator.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Generic, TypeVar

from vibeflow.citations import SourceCitation
from vibeflow.constants import EventKind
from vibeflow.resilience.cancellation import CancellationToken
from vibeflow.resilience.errors import GenerationError

T = TypeVar("T")

StatusCallback = Callable[[str], None]
ChunkCallback = Callable[[str], None]


@dataclass(frozen=True)
class Usage:
    """Token usage as reported by a provider for one generation."""

    input_tokens: int = 0
    output_tokens: int = 0
    grounding_requests: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "grounding_requests": self.grounding_requests,
        }


@dataclass(frozen=True)
class ChunkEvent:
    text: str
    kind: ClassVar[EventKind] = EventKind.CHUNK

    def to_payload(self) -> dict[str, Any]:
        return {"text": self.text}


@dataclass(frozen=True)
class StatusEvent:
    message: str
    kind: ClassVar[EventKind] = EventKind.STATUS

    def to_payload(self) -> dict[str, Any]:
        return {"message": self.message}


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    error_kind: str
    retryable: bool
    provider: str | None = None
    kind: ClassVar[EventKind] = EventKind.ERROR

    @classmethod
    def from_error(cls, error: GenerationError) -> ErrorEvent:
        return cls(
            message=error.message,
            error_kind=error.kind,
            retryable=error.retryable,
            provider=error.provider,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "error_kind": self.error_kind,
            "retryable": self.retryable,
            "provider": self.provider,
        }


@dataclass(frozen=True)
class DoneEvent:
    final_text: str
    sources: tuple[SourceCitation, ...] = ()
    usage: Usage | None = None
    model: str | None = None
    kind: ClassVar[EventKind] = EventKind.DONE

    def to_payload(self) -> dict[str, Any]:
        return {
            "final_text": self.final_text,
            "sources": [s.to_dict() for s in self.sources],
            "usage": self.usage.to_dict() if self.usage else None,
            "model": self.model,
        }


type StreamEvent = ChunkEvent | StatusEvent | ErrorEvent | DoneEvent


async def drain_events(
    events: AsyncIterable[StreamEvent],
    *,
    on_chunk: ChunkCallback | None = None,
    on_status: StatusCallback | None = None,
) -> DoneEvent | ErrorEvent | None:
    """Consume *events* through callbacks and return the terminal event.

    Returns None if the stream ends without a terminal event
    (a cancelled generation).
    """
    async for event in events:
        if isinstance(event, ChunkEvent):
            if on_chunk is not None:
                on_chunk(event.text)
        elif isinstance(event, StatusEvent):
            if on_status is not None:
                on_status(event.message)
        else:
            return event
    return None


@dataclass(frozen=True)
class Completed(Generic[T]):
    """Result marker yielded last by :func:`relay_status`."""

    value: T


async def relay_status(
    operation: Callable[[StatusCallback], Awaitable[T]],
    token: CancellationToken,
) -> AsyncIterator[StatusEvent | Completed[T]]:
    """Run callback-style *operation* and surface its status as events.

    Status messages the operation reports are yielded as they arrive;
    the operation's result follows as a single :class:`Completed`.
    Exceptions from the operation propagate.
    """
    queue: asyncio.Queue[str] = asyncio.Queue()
    task = asyncio.ensure_future(operation(queue.put_nowait))
    getter: asyncio.Future[str] | None = None
    try:
        while True:
            getter = asyncio.ensure_future(queue.get())
            await asyncio.wait(
                {task, getter}, return_when=asyncio.FIRST_COMPLETED
            )
            if not getter.done():
                getter.cancel()  # an unread message stays queued
            await asyncio.wait({getter})
            if not getter.cancelled():
                token.raise_if_cancelled()
                yield StatusEvent(getter.result())
            if not task.done():
                continue
            while not queue.empty():
                token.raise_if_cancelled()
                yield StatusEvent(queue.get_nowait())
            yield Completed(task.result())
            return
    finally:
        for pending in (task, getter):
            if pending is not None and not pending.done():
                pending.cancel()
                await asyncio.wait({pending})
