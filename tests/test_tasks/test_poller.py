"""Tests for the background task poller."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from vibeflow.citations import SourceCitation
from vibeflow.constants import TaskStatus
from vibeflow.resilience.cancellation import CancellationToken
from vibeflow.resilience.errors import (
    AuthorizationError,
    ConnectionLostError,
    GenerationAborted,
    TaskFailedError,
    TaskTimeoutError,
    TransientTransportError,
)
from vibeflow.streaming.events import DoneEvent, StatusEvent, StreamEvent
from vibeflow.tasks.poller import (
    BackgroundTaskPoller,
    TaskSnapshot,
    format_elapsed,
)


class RecordingToken(CancellationToken):
    """Records requested sleeps instead of waiting."""

    def __init__(self, on_sleep: Callable[[float], None] | None = None):
        super().__init__()
        self.sleeps: list[float] = []
        self._on_sleep = on_sleep

    async def sleep(self, seconds: float) -> None:
        self.raise_if_cancelled()
        self.sleeps.append(seconds)
        if self._on_sleep is not None:
            self._on_sleep(seconds)


async def _create() -> str:
    return "task-1"


def _scripted(*snapshots: TaskSnapshot | Exception):
    script = list(snapshots)
    calls: list[str] = []

    async def poll(task_id: str) -> TaskSnapshot:
        calls.append(task_id)
        item = script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return poll, calls


async def _run(
    poller: BackgroundTaskPoller, poll, token: CancellationToken
) -> list[StreamEvent]:
    return [e async for e in poller.run(_create, poll, token)]


class TestPolling:
    @pytest.mark.asyncio
    async def test_completes_after_progress(self) -> None:
        poll, calls = _scripted(
            TaskSnapshot(TaskStatus.IN_PROGRESS),
            TaskSnapshot(TaskStatus.IN_PROGRESS),
            TaskSnapshot(
                TaskStatus.COMPLETED,
                text="Report",
                sources=(
                    SourceCitation("https://a.example"),
                    SourceCitation("https://a.example"),
                ),
            ),
        )
        token = RecordingToken()
        poller = BackgroundTaskPoller(poll_interval=10, provider="gemini")

        events = await _run(poller, poll, token)

        assert calls == ["task-1"] * 3
        assert token.sleeps == [10, 10]
        assert events[:2] == [
            StatusEvent("Researching... (0m 0s elapsed)"),
            StatusEvent("Researching... (0m 0s elapsed)"),
        ]
        done = events[-1]
        assert isinstance(done, DoneEvent)
        assert done.final_text == "Report"
        assert done.sources == (SourceCitation("https://a.example"),)

    @pytest.mark.asyncio
    async def test_failed_on_first_poll(self) -> None:
        poll, _ = _scripted(
            TaskSnapshot(TaskStatus.FAILED, error_message="quota")
        )
        token = RecordingToken()
        with pytest.raises(TaskFailedError, match="quota"):
            await _run(BackgroundTaskPoller(poll_interval=5), poll, token)
        assert token.sleeps == []

    @pytest.mark.asyncio
    async def test_remote_cancel_is_not_an_error(self) -> None:
        poll, _ = _scripted(TaskSnapshot(TaskStatus.CANCELLED))
        token = RecordingToken()
        with pytest.raises(GenerationAborted):
            await _run(BackgroundTaskPoller(poll_interval=0), poll, token)
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_custom_phase(self) -> None:
        poll, _ = _scripted(
            TaskSnapshot(TaskStatus.QUEUED),
            TaskSnapshot(TaskStatus.COMPLETED, text="x"),
        )
        poller = BackgroundTaskPoller(poll_interval=0, phase="Analyzing")
        events = await _run(poller, poll, RecordingToken())
        assert events[0] == StatusEvent("Analyzing... (0m 0s elapsed)")


class TestFailures:
    @pytest.mark.asyncio
    async def test_transient_failures_reset_on_success(self) -> None:
        flaky = TransientTransportError("503")
        poll, calls = _scripted(
            flaky,
            flaky,
            TaskSnapshot(TaskStatus.IN_PROGRESS),
            flaky,
            flaky,
            TaskSnapshot(TaskStatus.COMPLETED, text="ok"),
        )
        poller = BackgroundTaskPoller(
            poll_interval=0, max_consecutive_failures=3
        )
        events = await _run(poller, poll, RecordingToken())
        assert isinstance(events[-1], DoneEvent)
        assert len(calls) == 6

    @pytest.mark.asyncio
    async def test_connection_lost_after_max_failures(self) -> None:
        poll, calls = _scripted(
            *[TransientTransportError("Network error")] * 5
        )
        poller = BackgroundTaskPoller(
            poll_interval=0, max_consecutive_failures=5
        )
        with pytest.raises(ConnectionLostError) as exc_info:
            await _run(poller, poll, RecordingToken())
        assert len(calls) == 5
        assert "still be running" in exc_info.value.message
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_fatal_poll_error_propagates(self) -> None:
        poll, calls = _scripted(AuthorizationError("Invalid API key"))
        with pytest.raises(AuthorizationError):
            await _run(
                BackgroundTaskPoller(poll_interval=0), poll, RecordingToken()
            )
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        now = [0.0]

        def advance(seconds: float) -> None:
            now[0] += seconds

        poll, _ = _scripted(*[TaskSnapshot(TaskStatus.IN_PROGRESS)] * 10)
        poller = BackgroundTaskPoller(
            poll_interval=60, max_duration=150, clock=lambda: now[0]
        )
        token = RecordingToken(on_sleep=advance)
        with pytest.raises(TaskTimeoutError, match="2m 30s"):
            await _run(poller, poll, token)
        assert token.sleeps == [60, 60, 60]

    @pytest.mark.asyncio
    async def test_create_retried_then_fails(self) -> None:
        attempts = 0

        async def create() -> str:
            nonlocal attempts
            attempts += 1
            raise TransientTransportError("503")

        poller = BackgroundTaskPoller(retry_attempts=2, retry_base_delay=0)
        token = CancellationToken()
        events: list[StreamEvent] = []
        with pytest.raises(TransientTransportError):
            async for event in poller.run(create, _scripted()[0], token):
                events.append(event)
        assert attempts == 2
        assert events == [StatusEvent("Retry 1/2 in 0ms...")]


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_between_polls(self) -> None:
        token = RecordingToken()
        poll, calls = _scripted(
            TaskSnapshot(TaskStatus.IN_PROGRESS),
            TaskSnapshot(TaskStatus.COMPLETED, text="late"),
        )
        poller = BackgroundTaskPoller(poll_interval=0)
        with pytest.raises(GenerationAborted):
            async for event in poller.run(_create, poll, token):
                if isinstance(event, StatusEvent):
                    token.cancel()
        assert calls == ["task-1"]


def test_format_elapsed() -> None:
    assert format_elapsed(0) == "0m 0s"
    assert format_elapsed(125.9) == "2m 5s"
