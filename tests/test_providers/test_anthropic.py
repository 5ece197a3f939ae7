"""Tests for the Anthropic Messages adapter."""

from __future__ import annotations

import json

import httpx
import pytest

from vibeflow.config import Settings
from vibeflow.constants import DEFAULT_ANTHROPIC_MAX_TOKENS
from vibeflow.providers.anthropic import AnthropicAdapter, max_tokens_for
from vibeflow.providers.schemas import GenerationRequest, SamplingSettings
from vibeflow.resilience.errors import TransientTransportError
from vibeflow.streaming.events import ChunkEvent, DoneEvent

KEY = "sk-ant-REDACTED"


def _request(**overrides) -> GenerationRequest:
    defaults = {
        "prompt": "Write requirements",
        "model_id": "claude-sonnet-4-5-20250929",
        "credential": KEY,
    }
    return GenerationRequest(**{**defaults, **overrides})


def _sse_events(*pairs: tuple[str, dict]) -> bytes:
    return "".join(
        f"event: {name}\ndata: {json.dumps(data)}\n\n" for name, data in pairs
    ).encode()


@pytest.mark.asyncio
async def test_stream_message(settings: Settings) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-api-key"] == KEY
        assert request.headers["anthropic-version"] == "2023-06-01"
        return httpx.Response(
            200,
            content=_sse_events(
                (
                    "message_start",
                    {
                        "type": "message_start",
                        "message": {
                            "model": "claude-sonnet-4-5-20250929",
                            "usage": {"input_tokens": 21},
                        },
                    },
                ),
                ("ping", {"type": "ping"}),
                (
                    "content_block_delta",
                    {
                        "type": "content_block_delta",
                        "delta": {"type": "text_delta", "text": "# PRD"},
                    },
                ),
                (
                    "content_block_delta",
                    {
                        "type": "content_block_delta",
                        "delta": {
                            "type": "thinking_delta",
                            "thinking": "hmm",
                        },
                    },
                ),
                (
                    "message_delta",
                    {"type": "message_delta", "usage": {"output_tokens": 9}},
                ),
                ("message_stop", {"type": "message_stop"}),
            ),
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    events = [
        e async for e in AnthropicAdapter(client, settings).stream(_request())
    ]

    assert [e.text for e in events if isinstance(e, ChunkEvent)] == ["# PRD"]
    done = events[-1]
    assert isinstance(done, DoneEvent)
    assert done.final_text == "# PRD"
    assert done.usage is not None
    assert (done.usage.input_tokens, done.usage.output_tokens) == (21, 9)


@pytest.mark.asyncio
async def test_overloaded_is_retried(settings: Settings) -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(
            529,
            json={
                "type": "error",
                "error": {
                    "type": "overloaded_error",
                    "message": "Overloaded",
                },
            },
        )

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    with pytest.raises(TransientTransportError) as exc_info:
        [
            e
            async for e in AnthropicAdapter(client, settings).stream(
                _request()
            )
        ]
    assert calls == 3
    assert exc_info.value.message == "Claude is overloaded - try again"


class TestBody:
    def test_top_p_omitted(self, settings: Settings) -> None:
        body = AnthropicAdapter(httpx.AsyncClient(), settings).build_body(
            _request(
                system_instruction="Senior PM",
                sampling=SamplingSettings(
                    top_p=0.5, top_k=10, stop_sequences=("STOP",)
                ),
            )
        )
        assert "top_p" not in body
        assert body["top_k"] == 10
        assert body["stop_sequences"] == ["STOP"]
        assert body["system"] == "Senior PM"

    def test_max_tokens_explicit(self) -> None:
        request = _request(sampling=SamplingSettings(max_output_tokens=100))
        assert max_tokens_for(request) == 100

    def test_max_tokens_unknown_model(self) -> None:
        request = _request(model_id="claude-unknown")
        assert max_tokens_for(request) == DEFAULT_ANTHROPIC_MAX_TOKENS
