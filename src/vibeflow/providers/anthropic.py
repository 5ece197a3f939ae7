"""Anthropic adapter (Messages API, SSE)."""

from __future__ import annotations

from typing import Any

from vibeflow.constants import DEFAULT_ANTHROPIC_MAX_TOKENS, ProviderId
from vibeflow.providers.base import StreamingChatAdapter, StreamState
from vibeflow.providers.registry import PROVIDERS
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.tokens.pricing import get_model

ANTHROPIC_ERROR_MESSAGES: dict[str, str] = {
    "invalid_request_error": "Invalid request parameters",
    "authentication_error": "Invalid API key",
    "permission_error": "Access denied",
    "not_found_error": "Model not found",
    "request_too_large": "Prompt too long for model",
    "rate_limit_error": "Rate limited - try again shortly",
    "api_error": "Provider error - try again",
    "overloaded_error": "Claude is overloaded - try again",
    "400": "Invalid request parameters",
    "401": "Invalid API key",
    "403": "Access denied",
    "404": "Model not found",
    "413": "Prompt too long for model",
    "429": "Rate limited - try again shortly",
    "500": "Provider error - try again",
    "529": "Claude is overloaded - try again",
}


def max_tokens_for(request: GenerationRequest) -> int:
    """Anthropic requires max_tokens; default to the model's output limit."""
    if request.sampling.max_output_tokens:
        return request.sampling.max_output_tokens
    model = get_model(request.model_id)
    if model is not None:
        return model.output_context_limit
    return DEFAULT_ANTHROPIC_MAX_TOKENS


class AnthropicAdapter(StreamingChatAdapter):
    descriptor = PROVIDERS[ProviderId.ANTHROPIC]
    error_messages = ANTHROPIC_ERROR_MESSAGES

    def build_url(self, request: GenerationRequest) -> str:
        return f"{self.descriptor.base_url}/messages"

    def build_body(self, request: GenerationRequest) -> dict[str, Any]:
        sampling = request.sampling
        caps = self.descriptor.capabilities
        # Recent Claude models reject temperature and top_p together
        body: dict[str, Any] = {
            "model": request.model_id,
            "max_tokens": max_tokens_for(request),
            "messages": [{"role": "user", "content": request.prompt}],
            "stream": True,
            "temperature": sampling.temperature,
        }
        if request.system_instruction:
            body["system"] = request.system_instruction
        if sampling.top_k is not None and caps.supports_top_k:
            body["top_k"] = sampling.top_k
        if sampling.stop_sequences and caps.supports_stop:
            body["stop_sequences"] = list(sampling.stop_sequences)
        return body

    def handle_payload(
        self, payload: dict[str, Any], state: StreamState
    ) -> str | None:
        event_type = payload.get("type")
        if event_type == "content_block_delta":
            delta = payload.get("delta") or {}
            if delta.get("type") == "text_delta":
                return delta.get("text") or None
            return None
        if event_type == "message_start":
            message = payload.get("message") or {}
            state.model = message.get("model") or state.model
            usage = message.get("usage") or {}
            if "input_tokens" in usage:
                state.input_tokens = usage["input_tokens"]
            return None
        if event_type == "message_delta":
            usage = payload.get("usage") or {}
            if "output_tokens" in usage:
                state.output_tokens = usage["output_tokens"]
            return None
        if event_type == "message_stop":
            state.finished = True
        return None
