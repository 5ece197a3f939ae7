"""OpenRouter adapter (OpenAI-compatible Chat Completions, SSE)."""

from __future__ import annotations

from typing import Any

from vibeflow.constants import ProviderId
from vibeflow.providers.base import StreamingChatAdapter, StreamState
from vibeflow.providers.registry import PROVIDERS
from vibeflow.providers.schemas import GenerationRequest

OPENROUTER_ERROR_MESSAGES: dict[str, str] = {
    "400": "Invalid request parameters",
    "401": "Invalid API key",
    "402": "Insufficient credits",
    "403": "Access denied",
    "404": "Model not found",
    "429": "Rate limited - try again shortly",
    "500": "Provider error - try again",
    "502": "Provider error - try again",
    "503": "Provider error - try again",
    "context_length_exceeded": "Prompt too long for model",
    "server_error": "Provider disconnected",
}


def chat_messages(request: GenerationRequest) -> list[dict[str, str]]:
    messages: list[dict[str, str]] = []
    if request.system_instruction:
        messages.append(
            {"role": "system", "content": request.system_instruction}
        )
    messages.append({"role": "user", "content": request.prompt})
    return messages


class OpenRouterAdapter(StreamingChatAdapter):
    """Streams ``choices[0].delta.content`` from ``/chat/completions``.

    The stream interleaves ``: OPENROUTER PROCESSING`` keep-alive
    comments while the upstream model warms up; the decoder drops them.
    """

    descriptor = PROVIDERS[ProviderId.OPENROUTER]
    error_messages = OPENROUTER_ERROR_MESSAGES

    def build_url(self, request: GenerationRequest) -> str:
        return f"{self.descriptor.base_url}/chat/completions"

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        sampling = request.sampling
        caps = self.descriptor.capabilities
        body: dict[str, Any] = {
            "model": request.model_id,
            "messages": chat_messages(request),
            "stream": True,
            "temperature": sampling.temperature,
        }
        if sampling.max_output_tokens and caps.supports_max_tokens:
            body["max_tokens"] = sampling.max_output_tokens
        if sampling.top_p is not None:
            body["top_p"] = sampling.top_p
        if sampling.top_k is not None and caps.supports_top_k:
            body["top_k"] = sampling.top_k
        if sampling.seed is not None and caps.supports_seed:
            body["seed"] = sampling.seed
        if sampling.stop_sequences and caps.supports_stop:
            body["stop"] = list(sampling.stop_sequences)
        return body

    def handle_payload(
        self, payload: dict[str, Any], state: StreamState
    ) -> str | None:
        if payload.get("model"):
            state.model = payload["model"]
        usage = payload.get("usage")
        if isinstance(usage, dict):
            state.input_tokens = usage.get("prompt_tokens")
            state.output_tokens = usage.get("completion_tokens")
        choices = payload.get("choices") or []
        if not choices:
            return None
        delta = choices[0].get("delta") or {}
        content = delta.get("content")
        return content if isinstance(content, str) else None
