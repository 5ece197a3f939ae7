"""Generation coordinator: one in-flight generation per project.

Picks the adapter, relays its events, and on success commits the final
text to the version store and adds to the running token usage. A
cancelled generation commits nothing and ends without a terminal
event; a failed one ends with exactly one :class:`ErrorEvent`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing

from vibeflow.constants import (
    ERROR_TRUNCATION_CHARS,
    ID_HEX_LENGTH,
    ArtifactSection,
    GenerationState,
    ProviderId,
    estimate_tokens,
)
from vibeflow.credentials import CredentialProvider
from vibeflow.logger import GenerationLogger
from vibeflow.providers.base import ProviderAdapter
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.resilience.cancellation import CancellationToken
from vibeflow.resilience.errors import (
    GenerationAborted,
    GenerationError,
    MidStreamError,
    classify_error,
    is_retryable,
)
from vibeflow.streaming.events import DoneEvent, ErrorEvent, StreamEvent
from vibeflow.tokens.pricing import calculate_cost, get_model
from vibeflow.tokens.usage import TokenUsage
from vibeflow.versions.store import ArtifactVersion, ArtifactVersionStore

logger = logging.getLogger(__name__)

AdapterSelector = Callable[[ProviderId, bool], ProviderAdapter]
StateListener = Callable[[GenerationState], None]


class GenerationInProgressError(RuntimeError):
    """A new run was started while another is still generating."""


class GenerationCoordinator:
    """Drives a generation from request to committed version.

    State machine: IDLE -> GENERATING -> COMMITTED | CANCELLED | FAILED.
    Any state other than GENERATING accepts a new run.
    """

    def __init__(
        self,
        store: ArtifactVersionStore,
        usage: TokenUsage,
        adapter_selector: AdapterSelector,
        *,
        credentials: CredentialProvider | None = None,
        generation_logger: GenerationLogger | None = None,
        on_state_change: StateListener | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store = store
        self._usage = usage
        self._select_adapter = adapter_selector
        self._credentials = credentials
        self._generation_logger = generation_logger
        self._on_state_change = on_state_change
        self._clock = clock
        self._state = GenerationState.IDLE
        self._token: CancellationToken | None = None
        self._section: ArtifactSection | None = None

    @property
    def state(self) -> GenerationState:
        return self._state

    @property
    def is_generating(self) -> bool:
        return self._state is GenerationState.GENERATING

    @property
    def active_section(self) -> ArtifactSection | None:
        """Section being generated, or None when nothing is running."""
        return self._section if self.is_generating else None

    def _set_state(self, state: GenerationState) -> None:
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def cancel(self) -> bool:
        """Cancel the in-flight generation.

        Returns True only for the call that actually cancelled it;
        repeat calls and calls with nothing running are no-ops.
        """
        if self._token is None or not self.is_generating:
            return False
        return self._token.cancel()

    def commit_manual_edit(
        self, section: ArtifactSection | str, content: str
    ) -> ArtifactVersion:
        """Append a user edit. Other sections stay editable mid-run.

        Raises:
            GenerationInProgressError: *section* is being generated.
        """
        section = ArtifactSection(section)
        if section is self.active_section:
            raise GenerationInProgressError(
                f"{section} is being generated"
            )
        return self._store.append(section, content)

    def _with_credential(
        self, provider: ProviderId, request: GenerationRequest
    ) -> GenerationRequest:
        if request.credential or self._credentials is None:
            return request
        credential = self._credentials.get(provider)
        if not credential:
            return request
        return dataclasses.replace(request, credential=credential)

    async def run(
        self,
        section: ArtifactSection | str,
        provider: ProviderId | str,
        request: GenerationRequest,
        *,
        background: bool = False,
    ) -> AsyncIterator[StreamEvent]:
        """Generate *section* and yield its events.

        Yields chunk and status events, then one :class:`DoneEvent`
        (committed) or one :class:`ErrorEvent` (failed). A cancelled
        run stops without a terminal event.

        Raises:
            GenerationInProgressError: Another run is generating.
        """
        if self.is_generating:
            raise GenerationInProgressError("A generation is already running")
        section = ArtifactSection(section)
        provider = ProviderId(provider)
        request = self._with_credential(provider, request)
        token = request.token
        self._token = token
        self._section = section
        self._set_state(GenerationState.GENERATING)

        request_id = uuid.uuid4().hex[:ID_HEX_LENGTH]
        start = self._clock()
        logger.info(
            "event=generation_start request_id=%s section=%s "
            "provider=%s model=%s background=%s",
            request_id,
            section,
            provider,
            request.model_id,
            background,
        )

        done: DoneEvent | None = None
        failure: ErrorEvent | None = None
        try:
            adapter = self._select_adapter(provider, background)
            async with aclosing(adapter.stream(request)) as events:
                async for event in events:
                    if token.cancelled:
                        break
                    if isinstance(event, DoneEvent):
                        done = event
                        break
                    if isinstance(event, ErrorEvent):
                        failure = event
                        break
                    yield event
        except GenerationAborted:
            token.cancel()
        except GenerationError as exc:
            if not token.cancelled:
                failure = ErrorEvent.from_error(exc)
        except Exception as exc:
            if not token.cancelled:
                logger.exception(
                    "event=generation_unexpected_error request_id=%s",
                    request_id,
                )
                failure = ErrorEvent(
                    message=str(exc)[:ERROR_TRUNCATION_CHARS]
                    or type(exc).__name__,
                    error_kind=classify_error(exc),
                    retryable=is_retryable(exc),
                    provider=provider,
                )
        except (GeneratorExit, asyncio.CancelledError):
            # Consumer abandoned the stream or the task was cancelled
            token.cancel()
            self._finish(
                GenerationState.CANCELLED,
                request_id, section, provider, request, start,
            )
            raise

        # Cancellation wins over a simultaneous success or failure
        if token.cancelled:
            self._finish(
                GenerationState.CANCELLED,
                request_id, section, provider, request, start,
            )
            return

        if failure is not None or done is None:
            if failure is None:
                failure = ErrorEvent.from_error(
                    MidStreamError(
                        "Stream ended without a result", provider=provider
                    )
                )
            logger.warning(
                "event=generation_failed request_id=%s kind=%s "
                "retryable=%s error=%s",
                request_id,
                failure.error_kind,
                failure.retryable,
                failure.message[:ERROR_TRUNCATION_CHARS],
            )
            if self._generation_logger is not None:
                self._generation_logger.log_error(
                    request_id, "generation", failure.message
                )
            self._finish(
                GenerationState.FAILED,
                request_id, section, provider, request, start,
            )
            yield failure
            return

        self._store.append(section, done.final_text)
        input_tokens, output_tokens = self._record_usage(
            done, request, provider
        )
        self._finish(
            GenerationState.COMMITTED,
            request_id, section, provider, request, start,
            model=done.model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        yield done

    def _record_usage(
        self,
        done: DoneEvent,
        request: GenerationRequest,
        provider: ProviderId,
    ) -> tuple[int, int]:
        """Add provider-reported (or estimated) usage to the totals."""
        if done.usage is not None:
            input_tokens = done.usage.input_tokens
            output_tokens = done.usage.output_tokens
        else:
            input_tokens = estimate_tokens(request.full_prompt)
            output_tokens = estimate_tokens(done.final_text)

        grounding = 0
        if request.grounding_enabled:
            reported = done.usage.grounding_requests if done.usage else 0
            grounding = reported or 1

        model = get_model(done.model or "") or get_model(request.model_id)
        cost = 0.0
        if model is not None:
            cost = calculate_cost(
                model,
                input_tokens,
                output_tokens,
                via_openrouter=provider is ProviderId.OPENROUTER,
            )
        self._usage.add(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            grounding_requests=grounding,
            cost=cost,
        )
        return input_tokens, output_tokens

    def _finish(
        self,
        state: GenerationState,
        request_id: str,
        section: ArtifactSection,
        provider: ProviderId,
        request: GenerationRequest,
        start: float,
        *,
        model: str | None = None,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> None:
        self._set_state(state)
        duration_ms = round((self._clock() - start) * 1000, 1)
        logger.info(
            "event=generation_end request_id=%s outcome=%s duration_ms=%s",
            request_id,
            state,
            duration_ms,
        )
        if self._generation_logger is not None:
            self._generation_logger.log_generation(
                request_id=request_id,
                section=section,
                provider=provider,
                model=model or request.model_id,
                outcome=state,
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                duration_ms=duration_ms,
            )
