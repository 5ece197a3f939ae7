"""Retry controller for the connection phase of provider calls.

Only establishing a connection is retried. Once any output has been
delivered, failures propagate: retrying would duplicate text the caller
has already seen.

Backoff doubles from ``base_delay`` and is capped, then jittered by
±25% so concurrent clients do not retry in lockstep.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)
from tenacity.wait import wait_base

from vibeflow.constants import (
    RETRY_BASE_DELAY_SECONDS,
    RETRY_JITTER_RATIO,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_SECONDS,
)
from vibeflow.resilience.cancellation import CancellationToken
from vibeflow.resilience.errors import is_retryable

logger = logging.getLogger(__name__)

T = TypeVar("T")


def compute_backoff(
    attempt: int,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
    max_delay: float = RETRY_MAX_DELAY_SECONDS,
) -> float:
    """Delay before retrying after failed *attempt* (1-based), unjittered."""
    return min(base_delay * 2 ** (attempt - 1), max_delay)


def apply_jitter(
    delay: float,
    ratio: float = RETRY_JITTER_RATIO,
    uniform: Callable[[float, float], float] = random.uniform,
) -> float:
    return max(0.0, delay + delay * ratio * uniform(-1.0, 1.0))


class wait_backoff_jitter(wait_base):  # noqa: N801
    """Capped exponential backoff with proportional jitter."""

    def __init__(
        self,
        base_delay: float = RETRY_BASE_DELAY_SECONDS,
        max_delay: float = RETRY_MAX_DELAY_SECONDS,
        jitter_ratio: float = RETRY_JITTER_RATIO,
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_ratio = jitter_ratio

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = compute_backoff(
            retry_state.attempt_number, self.base_delay, self.max_delay
        )
        return apply_jitter(delay, self.jitter_ratio)


def retry_status_message(attempt: int, max_attempts: int, delay: float) -> str:
    return f"Retry {attempt}/{max_attempts} in {round(delay * 1000)}ms..."


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY_SECONDS,
    max_delay: float = RETRY_MAX_DELAY_SECONDS,
    on_status: Callable[[str], None] | None = None,
    token: CancellationToken | None = None,
) -> T:
    """Run *operation*, retrying rate-limit and transient failures.

    Fatal errors and the final retryable failure are re-raised
    unchanged. Backoff sleeps observe *token*, so cancelling during
    a wait raises ``GenerationAborted`` instead of retrying.
    """

    def _before_sleep(retry_state: RetryCallState) -> None:
        delay = (
            retry_state.next_action.sleep
            if retry_state.next_action
            else 0.0
        )
        error = (
            retry_state.outcome.exception()
            if retry_state.outcome
            else None
        )
        logger.warning(
            "event=retry_scheduled attempt=%d max=%d delay_ms=%d error=%s",
            retry_state.attempt_number,
            max_attempts,
            round(delay * 1000),
            error,
        )
        if on_status is not None:
            on_status(
                retry_status_message(
                    retry_state.attempt_number, max_attempts, delay
                )
            )

    if token is not None:
        token.raise_if_cancelled()

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_backoff_jitter(base_delay, max_delay),
        retry=retry_if_exception(is_retryable),
        before_sleep=_before_sleep,
        sleep=token.sleep if token is not None else asyncio.sleep,
        reraise=True,
    )
    return await retrying(operation)
