"""OpenAI adapters built on the Responses API.

- :class:`OpenAIResponsesAdapter` streams ``/responses`` events.
- :class:`OpenAIDeepResearchAdapter` runs a research model as a
  background response and polls ``/responses/{id}``.
"""

from __future__ import annotations

import logging
from typing import Any

from vibeflow.citations import SourceCitation, extract_markdown_citations
from vibeflow.constants import OPENAI_DEEP_RESEARCH_MODEL, ProviderId, TaskStatus
from vibeflow.providers.base import (
    BackgroundTaskAdapter,
    StreamingChatAdapter,
    StreamState,
)
from vibeflow.providers.registry import PROVIDERS
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.resilience.errors import MidStreamError
from vibeflow.streaming.events import Usage
from vibeflow.tasks.poller import TaskSnapshot

logger = logging.getLogger(__name__)

OPENAI_ERROR_MESSAGES: dict[str, str] = {
    "invalid_api_key": "Invalid API key",
    "insufficient_quota": "Quota exceeded - check your billing details",
    "rate_limit_exceeded": "Rate limited - try again shortly",
    "model_not_found": "Model not found",
    "context_length_exceeded": "Prompt too long for model",
    "server_error": "Provider error - try again",
    "400": "Invalid request parameters",
    "401": "Invalid API key",
    "403": "Access denied",
    "404": "Model not found",
    "429": "Rate limited - try again shortly",
    "500": "Provider error - try again",
    "502": "Provider error - try again",
    "503": "OpenAI is overloaded - try again",
}

WEB_SEARCH_TOOL = {"type": "web_search_preview"}


def _annotation_citation(annotation: Any) -> SourceCitation | None:
    if not isinstance(annotation, dict):
        return None
    url = annotation.get("url")
    if not url:
        return None
    return SourceCitation(uri=url, title=annotation.get("title") or "")


def parse_response_output(
    data: dict[str, Any],
) -> tuple[str, list[SourceCitation]]:
    """Text and citations from a completed Responses API object.

    Prefers the structured ``message`` item and its ``url_citation``
    annotations; falls back to ``output_text`` and inline links.
    """
    text = data.get("output_text") or ""
    sources: list[SourceCitation] = []
    for item in data.get("output") or []:
        if not isinstance(item, dict) or item.get("type") != "message":
            continue
        for content in item.get("content") or []:
            if content.get("type") != "output_text":
                continue
            text = content.get("text") or text
            for annotation in content.get("annotations") or []:
                citation = _annotation_citation(annotation)
                if citation is not None:
                    sources.append(citation)
    if not sources:
        sources = extract_markdown_citations(text)
    return text, sources


def _count_web_searches(data: dict[str, Any]) -> int:
    return sum(
        1
        for item in data.get("output") or []
        if isinstance(item, dict) and item.get("type") == "web_search_call"
    )


def _usage(data: dict[str, Any]) -> Usage | None:
    usage = data.get("usage")
    if not isinstance(usage, dict):
        return None
    return Usage(
        input_tokens=usage.get("input_tokens") or 0,
        output_tokens=usage.get("output_tokens") or 0,
        grounding_requests=_count_web_searches(data),
    )


class OpenAIResponsesAdapter(StreamingChatAdapter):
    descriptor = PROVIDERS[ProviderId.OPENAI]
    error_messages = OPENAI_ERROR_MESSAGES

    def build_url(self, request: GenerationRequest) -> str:
        return f"{self.descriptor.base_url}/responses"

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        sampling = request.sampling
        body: dict[str, Any] = {
            "model": request.model_id,
            "input": request.prompt,
            "stream": True,
            "temperature": sampling.temperature,
        }
        if request.system_instruction:
            body["instructions"] = request.system_instruction
        if sampling.top_p is not None:
            body["top_p"] = sampling.top_p
        if (
            sampling.max_output_tokens
            and self.descriptor.capabilities.supports_max_tokens
        ):
            body["max_output_tokens"] = sampling.max_output_tokens
        if request.grounding_enabled:
            body["tools"] = [WEB_SEARCH_TOOL]
        return body

    def handle_payload(
        self, payload: dict[str, Any], state: StreamState
    ) -> str | None:
        event_type = payload.get("type")
        if event_type == "response.output_text.delta":
            delta = payload.get("delta")
            return delta if isinstance(delta, str) else None
        if event_type == "response.output_text.annotation.added":
            citation = _annotation_citation(payload.get("annotation"))
            if citation is not None:
                state.sources.append(citation)
            return None
        if event_type == "response.web_search_call.completed":
            state.grounding_requests += 1
            return None
        if event_type in ("response.completed", "response.incomplete"):
            response = payload.get("response") or {}
            state.model = response.get("model") or state.model
            usage = response.get("usage")
            if isinstance(usage, dict):
                state.input_tokens = usage.get("input_tokens")
                state.output_tokens = usage.get("output_tokens")
            if event_type == "response.incomplete":
                logger.warning(
                    "event=response_incomplete reason=%s",
                    (response.get("incomplete_details") or {}).get("reason"),
                )
            state.finished = True
            return None
        if event_type == "response.failed":
            error = (payload.get("response") or {}).get("error") or {}
            raise MidStreamError(
                self.describe_error(error.get("code"), error.get("message")),
                provider=self.descriptor.id,
                code=error.get("code"),
            )
        if event_type == "error":
            raise MidStreamError(
                self.describe_error(payload.get("code"), payload.get("message")),
                provider=self.descriptor.id,
                code=payload.get("code"),
            )
        return None


class OpenAIDeepResearchAdapter(BackgroundTaskAdapter):
    descriptor = PROVIDERS[ProviderId.OPENAI]
    error_messages = OPENAI_ERROR_MESSAGES
    agent_label = "OpenAI Deep Research Agent"

    @property
    def poll_interval(self) -> float:
        return self._settings.openai_poll_interval_seconds

    async def create_task(self, request: GenerationRequest) -> str:
        body: dict[str, Any] = {
            "model": request.model_id or OPENAI_DEEP_RESEARCH_MODEL,
            "input": request.prompt,
            "background": True,
            "tools": [WEB_SEARCH_TOOL],
        }
        if request.system_instruction:
            body["instructions"] = request.system_instruction
        data = await self.send_json(
            "POST",
            f"{self.descriptor.base_url}/responses",
            request.credential,
            request.token,
            body,
        )
        response_id = data.get("id")
        if not response_id:
            raise MidStreamError(
                "API did not return a response id",
                provider=self.descriptor.id,
            )
        return str(response_id)

    async def poll_status(
        self, task_id: str, request: GenerationRequest
    ) -> TaskSnapshot:
        data = await self.send_json(
            "GET",
            f"{self.descriptor.base_url}/responses/{task_id}",
            request.credential,
            request.token,
        )
        status = TaskStatus.parse(data.get("status"))
        if status is TaskStatus.COMPLETED:
            text, sources = parse_response_output(data)
            return TaskSnapshot(
                status=status,
                text=text,
                sources=tuple(sources),
                usage=_usage(data),
                model=data.get("model"),
            )
        if status is TaskStatus.FAILED:
            error = data.get("error") or {}
            reason = error.get("message") or (
                data.get("incomplete_details") or {}
            ).get("reason")
            return TaskSnapshot(
                status=status,
                error_message=f"Deep Research failed: {reason or 'Unknown error'}",
            )
        return TaskSnapshot(status=status)
