"""Adapter base classes.

Two adapter kinds exist:

- :class:`StreamingChatAdapter` opens one streamed HTTP response and
  turns each decoded payload into chunk events. Subclasses provide the
  URL, body and per-payload extraction.
- :class:`BackgroundTaskAdapter` creates a remote research task and
  hands it to :class:`BackgroundTaskPoller`. Subclasses provide the
  create and status calls.

Both expose ``stream(request)`` returning an async iterator of
:data:`StreamEvent` ending in exactly one :class:`DoneEvent`, and raise
typed :class:`GenerationError`s or :class:`GenerationAborted`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol

import httpx

from vibeflow.citations import SourceCitation, dedupe_citations
from vibeflow.config import Settings
from vibeflow.constants import StreamFraming
from vibeflow.credentials import require_credential
from vibeflow.providers.registry import ProviderDescriptor
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.resilience.cancellation import CancellationToken
from vibeflow.resilience.errors import (
    GenerationError,
    TransientTransportError,
    error_for_status,
    short_error_message,
)
from vibeflow.resilience.retry import with_retry
from vibeflow.streaming.decoder import iter_payloads
from vibeflow.streaming.events import (
    ChunkEvent,
    Completed,
    DoneEvent,
    StatusEvent,
    StreamEvent,
    Usage,
    relay_status,
)
from vibeflow.tasks.poller import BackgroundTaskPoller, TaskSnapshot

logger = logging.getLogger(__name__)


class ProviderAdapter(Protocol):
    descriptor: ProviderDescriptor

    def stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamEvent]: ...


@dataclass
class StreamState:
    """Mutable accumulator for one streamed response."""

    model: str
    parts: list[str] = field(default_factory=list)
    sources: list[SourceCitation] = field(default_factory=list)
    input_tokens: int | None = None
    output_tokens: int | None = None
    grounding_requests: int = 0
    finished: bool = False

    @property
    def usage(self) -> Usage | None:
        if self.input_tokens is None and self.output_tokens is None:
            return None
        return Usage(
            input_tokens=self.input_tokens or 0,
            output_tokens=self.output_tokens or 0,
            grounding_requests=self.grounding_requests,
        )


def _json_body(response: httpx.Response) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class _HttpAdapter(ABC):
    """Shared HTTP error mapping for both adapter kinds."""

    descriptor: ClassVar[ProviderDescriptor]
    # Machine-readable codes and HTTP statuses → short user message
    error_messages: ClassVar[dict[str, str]] = {}

    def __init__(
        self,
        client: httpx.AsyncClient,
        settings: Settings | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or Settings()

    def extract_error(
        self, body: dict[str, Any]
    ) -> tuple[str | None, str | None]:
        """(code, message) from a provider error body."""
        error = body.get("error")
        if isinstance(error, dict):
            code = error.get("code") or error.get("type") or error.get("status")
            message = error.get("message")
            return (
                str(code) if code is not None else None,
                str(message) if message else None,
            )
        if isinstance(error, str):
            return None, error
        return None, None

    def describe_error(
        self, code: str | int | None, detail: str | None
    ) -> str:
        return short_error_message(self.error_messages, code, detail=detail)

    def error_for_response(self, response: httpx.Response) -> GenerationError:
        code, detail = self.extract_error(_json_body(response))
        message = short_error_message(
            self.error_messages, code, response.status_code, detail=detail
        )
        logger.warning(
            "event=provider_http_error provider=%s status=%d code=%s",
            self.descriptor.id,
            response.status_code,
            code,
        )
        return error_for_status(
            response.status_code,
            message,
            provider=self.descriptor.id,
            code=code,
        )

    def describe_stream_error(self, error: Any) -> str:
        if isinstance(error, dict):
            code, detail = self.extract_error({"error": error})
            return self.describe_error(code, detail)
        return self.describe_error(None, str(error))

    async def send_json(
        self,
        method: str,
        url: str,
        credential: str,
        token: CancellationToken,
        body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """One non-streamed JSON call with typed error mapping."""
        try:
            response = await token.race(
                self._client.request(
                    method,
                    url,
                    headers=self.descriptor.headers(credential),
                    json=body,
                )
            )
        except httpx.TransportError as exc:
            raise TransientTransportError(
                f"Network error contacting {self.descriptor.display_name}",
                provider=self.descriptor.id,
            ) from exc
        if not response.is_success:
            raise self.error_for_response(response)
        return _json_body(response)


class StreamingChatAdapter(_HttpAdapter):
    framing: ClassVar[StreamFraming] = StreamFraming.SSE

    @abstractmethod
    def build_url(self, request: GenerationRequest) -> str: ...

    @abstractmethod
    def build_body(self, request: GenerationRequest) -> dict[str, Any]: ...

    def build_headers(self, request: GenerationRequest) -> dict[str, str]:
        return self.descriptor.headers(request.credential)

    @abstractmethod
    def handle_payload(
        self, payload: dict[str, Any], state: StreamState
    ) -> str | None:
        """Update *state* from one payload; return its text delta."""

    async def stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamEvent]:
        require_credential(self.descriptor, request.credential)
        token = request.token
        token.raise_if_cancelled()
        yield StatusEvent(f"Connecting to {self.descriptor.display_name}...")

        response: httpx.Response | None = None
        async for item in relay_status(
            lambda notify: with_retry(
                lambda: self._connect(request),
                max_attempts=self._settings.retry_max_attempts,
                base_delay=self._settings.retry_base_delay_seconds,
                max_delay=self._settings.retry_max_delay_seconds,
                on_status=notify,
                token=token,
            ),
            token,
        ):
            if isinstance(item, Completed):
                response = item.value
            else:
                yield item
        if response is None:
            raise TransientTransportError(
                f"No response from {self.descriptor.display_name}",
                provider=self.descriptor.id,
            )

        state = StreamState(model=request.model_id)
        payloads = iter_payloads(
            token.iterate(response.aiter_bytes()),
            framing=self.framing,
            provider=self.descriptor.id,
            describe_error=self.describe_stream_error,
        )
        try:
            async for payload in payloads:
                delta = self.handle_payload(payload, state)
                token.raise_if_cancelled()
                if delta:
                    if not state.parts:
                        yield StatusEvent("Generating...")
                    state.parts.append(delta)
                    yield ChunkEvent(delta)
                if state.finished:
                    break
        except httpx.TransportError as exc:
            raise TransientTransportError(
                "Provider disconnected", provider=self.descriptor.id
            ) from exc
        finally:
            await payloads.aclose()
            await response.aclose()

        token.raise_if_cancelled()
        logger.info(
            "event=stream_complete provider=%s model=%s chunks=%d",
            self.descriptor.id,
            state.model,
            len(state.parts),
        )
        yield DoneEvent(
            final_text="".join(state.parts),
            sources=tuple(dedupe_citations(state.sources)),
            usage=state.usage,
            model=state.model,
        )

    async def _connect(self, request: GenerationRequest) -> httpx.Response:
        http_request = self._client.build_request(
            "POST",
            self.build_url(request),
            headers=self.build_headers(request),
            json=self.build_body(request),
        )
        try:
            response = await request.token.race(
                self._client.send(http_request, stream=True)
            )
        except httpx.TransportError as exc:
            raise TransientTransportError(
                f"Network error connecting to {self.descriptor.display_name}",
                provider=self.descriptor.id,
            ) from exc
        if response.is_success:
            return response
        try:
            await response.aread()
        finally:
            await response.aclose()
        raise self.error_for_response(response)


class BackgroundTaskAdapter(_HttpAdapter):
    phase: ClassVar[str] = "Researching"
    agent_label: ClassVar[str] = "Deep Research"

    @property
    @abstractmethod
    def poll_interval(self) -> float: ...

    @abstractmethod
    async def create_task(self, request: GenerationRequest) -> str:
        """Start the remote task and return its id."""

    @abstractmethod
    async def poll_status(
        self, task_id: str, request: GenerationRequest
    ) -> TaskSnapshot: ...

    def build_poller(self) -> BackgroundTaskPoller:
        return BackgroundTaskPoller(
            poll_interval=self.poll_interval,
            max_consecutive_failures=self._settings.poll_max_consecutive_failures,
            max_duration=self._settings.task_max_duration_seconds,
            phase=self.phase,
            provider=self.descriptor.id,
            retry_attempts=self._settings.retry_max_attempts,
            retry_base_delay=self._settings.retry_base_delay_seconds,
        )

    async def stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamEvent]:
        require_credential(self.descriptor, request.credential)
        request.token.raise_if_cancelled()
        yield StatusEvent(f"Initializing {self.agent_label}...")
        async for event in self.build_poller().run(
            lambda: self.create_task(request),
            lambda task_id: self.poll_status(task_id, request),
            request.token,
        ):
            yield event
