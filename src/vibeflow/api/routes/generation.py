"""Generation routes: SSE streaming and cancellation."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from vibeflow.api.dependencies import get_sessions, get_settings
from vibeflow.api.schemas import APIResponse, GenerateRequest
from vibeflow.config import Settings
from vibeflow.constants import EventKind, ProviderId
from vibeflow.providers.factory import resolve_model_id
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.services.generation_service import GenerationInProgressError
from vibeflow.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/projects/{project_id}", tags=["generation"]
)


async def _generation_event_stream(
    sessions: SessionService,
    project_id: str,
    provider: ProviderId,
    body: GenerateRequest,
) -> AsyncIterator[dict[str, str]]:
    """Async generator mapping coordinator events to SSE events.

    A cancelled generation simply ends the stream.
    """
    request = GenerationRequest(
        prompt=body.prompt,
        model_id=resolve_model_id(provider, body.model_id, body.background),
        system_instruction=body.system_instruction,
        sampling=body.sampling.to_settings(),
        grounding_enabled=body.grounding_enabled,
    )
    try:
        async for event in sessions.generate(
            project_id,
            body.section,
            provider,
            request,
            background=body.background,
        ):
            yield {
                "event": event.kind,
                "data": json.dumps(event.to_payload()),
            }
    except GenerationInProgressError:
        yield {
            "event": EventKind.ERROR,
            "data": json.dumps({
                "message": "Generation already in progress",
                "error_kind": "conflict",
                "retryable": False,
                "provider": provider,
            }),
        }


@router.post("/generate")
async def generate(
    project_id: str,
    body: GenerateRequest,
    sessions: SessionService = Depends(get_sessions),
    settings: Settings = Depends(get_settings),
) -> EventSourceResponse:
    """Generate one artifact section with SSE streaming."""
    provider = body.provider or settings.default_provider
    return EventSourceResponse(
        _generation_event_stream(sessions, project_id, provider, body),
        sep="\n",
    )


@router.post("/cancel")
async def cancel(
    project_id: str,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    """Cancel the in-flight generation, if any."""
    cancelled = sessions.cancel(project_id)
    if cancelled:
        logger.info("event=generation_cancel project_id=%s", project_id)
    return APIResponse(success=True, data={"cancelled": cancelled})
