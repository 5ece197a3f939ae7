"""Polling lifecycle for long-running remote research tasks.

Some backends run a generation as a background task: one call creates
it, then its status is fetched periodically until it reaches a terminal
state. The poller owns that loop: creation (retried like any
connection), progress status, tolerance for flaky status calls, an
overall time ceiling, and cancellation between polls.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass

from vibeflow.citations import SourceCitation, dedupe_citations
from vibeflow.constants import (
    GEMINI_POLL_INTERVAL_SECONDS,
    POLL_MAX_CONSECUTIVE_FAILURES,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
    TASK_MAX_DURATION_SECONDS,
    TaskStatus,
)
from vibeflow.resilience.cancellation import CancellationToken
from vibeflow.resilience.errors import (
    ConnectionLostError,
    GenerationAborted,
    TaskFailedError,
    TaskTimeoutError,
    is_retryable,
)
from vibeflow.resilience.retry import with_retry
from vibeflow.streaming.events import (
    Completed,
    DoneEvent,
    StatusEvent,
    StreamEvent,
    Usage,
    relay_status,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskSnapshot:
    """One observation of a remote task's state."""

    status: TaskStatus
    text: str = ""
    sources: tuple[SourceCitation, ...] = ()
    error_message: str | None = None
    usage: Usage | None = None
    model: str | None = None


def format_elapsed(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    return f"{minutes}m {secs}s"


class BackgroundTaskPoller:
    """Creates a remote task and polls it to completion.

    A failed status call counts against ``max_consecutive_failures``
    and the counter resets on the next successful poll. Fatal errors
    (bad credentials, invalid request) are not tolerated and propagate
    immediately.
    """

    def __init__(
        self,
        *,
        poll_interval: float = GEMINI_POLL_INTERVAL_SECONDS,
        max_consecutive_failures: int = POLL_MAX_CONSECUTIVE_FAILURES,
        max_duration: float = TASK_MAX_DURATION_SECONDS,
        phase: str = "Researching",
        provider: str | None = None,
        retry_attempts: int = RETRY_MAX_ATTEMPTS,
        retry_base_delay: float = RETRY_BASE_DELAY_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._poll_interval = poll_interval
        self._max_failures = max_consecutive_failures
        self._max_duration = max_duration
        self._phase = phase
        self._provider = provider
        self._retry_attempts = retry_attempts
        self._retry_base_delay = retry_base_delay
        self._clock = clock

    async def run(
        self,
        create_task: Callable[[], Awaitable[str]],
        poll_status: Callable[[str], Awaitable[TaskSnapshot]],
        token: CancellationToken,
    ) -> AsyncIterator[StreamEvent]:
        """Yield status events, then exactly one DoneEvent on success.

        Raises TaskFailedError, TaskTimeoutError, ConnectionLostError
        or GenerationAborted.
        """
        task_id = ""
        async for item in relay_status(
            lambda notify: with_retry(
                create_task,
                max_attempts=self._retry_attempts,
                base_delay=self._retry_base_delay,
                on_status=notify,
                token=token,
            ),
            token,
        ):
            if isinstance(item, Completed):
                task_id = item.value
            else:
                yield item
        logger.info(
            "event=task_created provider=%s task_id=%s",
            self._provider,
            task_id,
        )

        started = self._clock()
        failures = 0
        while (elapsed := self._clock() - started) < self._max_duration:
            token.raise_if_cancelled()
            try:
                snapshot = await token.race(poll_status(task_id))
            except GenerationAborted:
                raise
            except Exception as exc:
                if not is_retryable(exc):
                    raise
                failures += 1
                logger.warning(
                    "event=poll_failed task_id=%s failures=%d error=%s",
                    task_id,
                    failures,
                    exc,
                )
                if failures >= self._max_failures:
                    raise ConnectionLostError(
                        f"Connection lost while {self._phase.lower()}: {exc}."
                        " The task may still be running remotely, but"
                        " local monitoring has stopped.",
                        provider=self._provider,
                    ) from exc
            else:
                failures = 0
                if snapshot.status is TaskStatus.COMPLETED:
                    logger.info(
                        "event=task_completed task_id=%s elapsed_s=%.1f",
                        task_id,
                        elapsed,
                    )
                    yield DoneEvent(
                        final_text=snapshot.text,
                        sources=tuple(dedupe_citations(snapshot.sources)),
                        usage=snapshot.usage,
                        model=snapshot.model,
                    )
                    return
                if snapshot.status is TaskStatus.FAILED:
                    raise TaskFailedError(
                        snapshot.error_message or "Task failed",
                        provider=self._provider,
                    )
                if snapshot.status is TaskStatus.CANCELLED:
                    # Cancelled remotely: report it the same way as a
                    # local cancel so no error is surfaced.
                    logger.info(
                        "event=task_cancelled_remotely task_id=%s", task_id
                    )
                    token.cancel()
                    raise GenerationAborted()
                token.raise_if_cancelled()
                yield StatusEvent(
                    f"{self._phase}... ({format_elapsed(elapsed)} elapsed)"
                )
            await token.sleep(self._poll_interval)

        raise TaskTimeoutError(
            f"{self._phase} timed out after"
            f" {format_elapsed(self._max_duration)}",
            provider=self._provider,
        )
