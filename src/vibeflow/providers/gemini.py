"""Google Gemini adapters.

- :class:`GeminiAdapter` streams ``models/{m}:streamGenerateContent``
  with ``alt=sse`` framing, optionally grounded with Google Search.
- :class:`GeminiDeepResearchAdapter` creates a Deep Research
  interaction in the background and polls it.
"""

from __future__ import annotations

from typing import Any

from vibeflow.citations import SourceCitation, extract_markdown_citations
from vibeflow.constants import GEMINI_DEEP_RESEARCH_AGENT, ProviderId, TaskStatus
from vibeflow.providers.base import (
    BackgroundTaskAdapter,
    StreamingChatAdapter,
    StreamState,
)
from vibeflow.providers.registry import PROVIDERS, gemini_safety_settings
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.resilience.errors import MidStreamError
from vibeflow.tasks.poller import TaskSnapshot

GEMINI_ERROR_MESSAGES: dict[str, str] = {
    "INVALID_ARGUMENT": "Invalid request or API key",
    "FAILED_PRECONDITION": "Gemini API not available for this key or region",
    "UNAUTHENTICATED": "Unauthorized - check your API key",
    "PERMISSION_DENIED": "Permission denied - check API key scope",
    "NOT_FOUND": "Model not found",
    "RESOURCE_EXHAUSTED": "Quota exceeded - try again later",
    "INTERNAL": "Provider error - try again",
    "UNAVAILABLE": "Gemini is overloaded - try again",
    "DEADLINE_EXCEEDED": "Request timed out - try again",
    "400": "Invalid request or API key",
    "401": "Unauthorized - check your API key",
    "403": "Permission denied - check API key scope",
    "404": "Model not found",
    "429": "Quota exceeded - try again later",
    "500": "Provider error - try again",
    "503": "Gemini is overloaded - try again",
}

# finishReason values that mean the output was withheld
_BLOCKED_FINISH_REASONS = frozenset({
    "SAFETY",
    "RECITATION",
    "BLOCKLIST",
    "PROHIBITED_CONTENT",
    "SPII",
})


def _grounding_citations(candidate: dict[str, Any]) -> list[SourceCitation]:
    metadata = candidate.get("groundingMetadata") or {}
    citations: list[SourceCitation] = []
    for chunk in metadata.get("groundingChunks") or []:
        web = chunk.get("web") if isinstance(chunk, dict) else None
        if isinstance(web, dict) and web.get("uri"):
            citations.append(
                SourceCitation(uri=web["uri"], title=web.get("title") or "")
            )
    return citations


class _GeminiErrors:
    """Google errors carry a numeric `code` and a symbolic `status`."""

    def extract_error(
        self, body: dict[str, Any]
    ) -> tuple[str | None, str | None]:
        error = body.get("error")
        if not isinstance(error, dict):
            return None, None
        code = error.get("status") or error.get("code")
        message = error.get("message")
        return (
            str(code) if code is not None else None,
            str(message) if message else None,
        )


class GeminiAdapter(_GeminiErrors, StreamingChatAdapter):
    descriptor = PROVIDERS[ProviderId.GEMINI]
    error_messages = GEMINI_ERROR_MESSAGES

    def build_url(self, request: GenerationRequest) -> str:
        return (
            f"{self.descriptor.base_url}/models/{request.model_id}"
            ":streamGenerateContent?alt=sse"
        )

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        sampling = request.sampling
        caps = self.descriptor.capabilities
        config: dict[str, Any] = {"temperature": sampling.temperature}
        if sampling.top_p is not None:
            config["topP"] = sampling.top_p
        if sampling.top_k is not None and caps.supports_top_k:
            config["topK"] = sampling.top_k
        if sampling.max_output_tokens and caps.supports_max_tokens:
            config["maxOutputTokens"] = sampling.max_output_tokens
        if sampling.stop_sequences and caps.supports_stop:
            config["stopSequences"] = list(sampling.stop_sequences)
        if sampling.thinking_budget > 0:
            config["thinkingConfig"] = {
                "thinkingBudget": sampling.thinking_budget
            }

        body: dict[str, Any] = {
            "contents": [
                {"role": "user", "parts": [{"text": request.prompt}]}
            ],
            "generationConfig": config,
        }
        if request.system_instruction:
            body["systemInstruction"] = {
                "parts": [{"text": request.system_instruction}]
            }
        if request.grounding_enabled:
            body["tools"] = [{"googleSearch": {}}]
        if caps.supports_safety:
            safety = gemini_safety_settings(sampling.safety_preset)
            if safety is not None:
                body["safetySettings"] = safety
        return body

    def handle_payload(
        self, payload: dict[str, Any], state: StreamState
    ) -> str | None:
        if payload.get("modelVersion"):
            state.model = payload["modelVersion"]
        usage = payload.get("usageMetadata")
        if isinstance(usage, dict):
            if "promptTokenCount" in usage:
                state.input_tokens = usage["promptTokenCount"]
            if "candidatesTokenCount" in usage:
                state.output_tokens = usage["candidatesTokenCount"]

        block_reason = (payload.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise MidStreamError(
                f"Prompt blocked by safety filters ({block_reason})",
                provider=self.descriptor.id,
                code=block_reason,
            )

        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        candidate = candidates[0]

        citations = _grounding_citations(candidate)
        if citations:
            state.sources.extend(citations)
            state.grounding_requests = 1

        finish_reason = candidate.get("finishReason")
        if finish_reason in _BLOCKED_FINISH_REASONS:
            raise MidStreamError(
                f"Response blocked by safety filters ({finish_reason})",
                provider=self.descriptor.id,
                code=finish_reason,
            )

        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(
            part.get("text") or ""
            for part in parts
            if isinstance(part, dict) and not part.get("thought")
        )
        return text or None


def _interaction_text(data: dict[str, Any]) -> str:
    outputs = data.get("outputs") or []
    if not outputs:
        return ""
    last = outputs[-1]
    if not isinstance(last, dict):
        return ""
    parts = (last.get("content") or {}).get("parts")
    if parts:
        return "".join(
            p.get("text") or "" for p in parts if isinstance(p, dict)
        )
    return last.get("text") or ""


class GeminiDeepResearchAdapter(_GeminiErrors, BackgroundTaskAdapter):
    descriptor = PROVIDERS[ProviderId.GEMINI]
    error_messages = {
        **GEMINI_ERROR_MESSAGES,
        "404": "Deep Research agent not found",
        "NOT_FOUND": "Deep Research agent not found",
    }
    agent_label = "Deep Research Agent"

    @property
    def poll_interval(self) -> float:
        return self._settings.gemini_poll_interval_seconds

    async def create_task(self, request: GenerationRequest) -> str:
        data = await self.send_json(
            "POST",
            f"{self.descriptor.base_url}/interactions",
            request.credential,
            request.token,
            {
                "agent": GEMINI_DEEP_RESEARCH_AGENT,
                "input": request.full_prompt,
                "background": True,
            },
        )
        name = data.get("name") or data.get("id")
        if not name:
            raise MidStreamError(
                "API did not return an interaction name",
                provider=self.descriptor.id,
            )
        return str(name)

    async def poll_status(
        self, task_id: str, request: GenerationRequest
    ) -> TaskSnapshot:
        path = task_id if "/" in task_id else f"interactions/{task_id}"
        data = await self.send_json(
            "GET",
            f"{self.descriptor.base_url}/{path}",
            request.credential,
            request.token,
        )
        status = TaskStatus.parse(data.get("state") or data.get("status"))
        if status is TaskStatus.COMPLETED:
            text = _interaction_text(data)
            # Deep Research embeds its sources as inline links
            return TaskSnapshot(
                status=status,
                text=text,
                sources=tuple(extract_markdown_citations(text)),
            )
        if status is TaskStatus.FAILED:
            message = (data.get("error") or {}).get("message")
            return TaskSnapshot(
                status=status,
                error_message=f"Deep Research failed: {message or 'Unknown error'}",
            )
        return TaskSnapshot(status=status)
