"""Tests for API routes using httpx AsyncClient."""

from __future__ import annotations

import json
from collections.abc import AsyncIterator

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sse_starlette.sse import AppStatus

from vibeflow.config import Settings
from vibeflow.constants import ProviderId
from vibeflow.credentials import StaticCredentials
from vibeflow.main import app
from vibeflow.providers.catalog import ModelCatalog
from vibeflow.providers.registry import PROVIDERS
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.repositories.fakes import FakeVersionRepository
from vibeflow.resilience.errors import RateLimitedError
from vibeflow.services.session_service import SessionService
from vibeflow.streaming.events import (
    ChunkEvent,
    DoneEvent,
    StatusEvent,
    StreamEvent,
    Usage,
)
from vibeflow.tokens.estimator import TokenCounter


class FakeAdapter:
    """Echo adapter; a prompt of "rate limit" fails with a 429."""

    def __init__(self, provider: ProviderId, background: bool) -> None:
        self.descriptor = PROVIDERS[provider]
        self.background = background
        self.requests: list[GenerationRequest] = []

    async def stream(
        self, request: GenerationRequest
    ) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        yield StatusEvent(f"Connecting to {self.descriptor.display_name}...")
        if request.prompt == "rate limit":
            raise RateLimitedError(
                "Rate limited - try again shortly",
                provider=self.descriptor.id,
            )
        yield ChunkEvent("# ")
        yield ChunkEvent(request.prompt)
        yield DoneEvent(
            f"# {request.prompt}",
            usage=Usage(input_tokens=10, output_tokens=4),
            model=request.model_id,
        )


def parse_sse_events(raw: str) -> list[dict[str, str]]:
    """Parse raw SSE text into list of {event, data} dicts."""
    events: list[dict[str, str]] = []
    current_event = ""
    current_data = ""
    for line in raw.replace("\r\n", "\n").split("\n"):
        line = line.strip()
        if line.startswith("event:"):
            current_event = line[6:].strip()
        elif line.startswith("data:"):
            current_data = line[5:].strip()
        elif line == "" and current_event:
            events.append({"event": current_event, "data": current_data})
            current_event = ""
            current_data = ""
    if current_event and current_data:
        events.append({"event": current_event, "data": current_data})
    return events


def _external_api(request: httpx.Request) -> httpx.Response:
    if request.url.path.endswith("/models"):
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "mistralai/mistral-large",
                        "name": "Mistral Large",
                        "pricing": {
                            "prompt": "0.000002",
                            "completion": "0.000006",
                        },
                    }
                ]
            },
        )
    if request.url.path.endswith(":countTokens"):
        return httpx.Response(200, json={"totalTokens": 140_000})
    return httpx.Response(404)


@pytest.fixture(autouse=True)
def _reset_sse_exit_event() -> None:
    """The shutdown event is module state bound to one event loop."""
    AppStatus.should_exit_event = None


@pytest.fixture
def adapters() -> list[FakeAdapter]:
    return []


@pytest.fixture
async def client(settings: Settings, adapters: list[FakeAdapter]):
    """Test client with fake repository, adapters and mocked HTTP."""

    def select(provider: ProviderId, background: bool) -> FakeAdapter:
        adapter = FakeAdapter(provider, background)
        adapters.append(adapter)
        return adapter

    http_client = httpx.AsyncClient(
        transport=httpx.MockTransport(_external_api)
    )
    credentials = StaticCredentials({p: "test-key" for p in ProviderId})
    app.state.settings = settings
    app.state.credentials = credentials
    app.state.sessions = SessionService(
        FakeVersionRepository(), select, credentials=credentials
    )
    app.state.catalog = ModelCatalog(http_client)
    app.state.token_counter = TokenCounter(http_client)

    transport = ASGITransport(app=app)
    async with AsyncClient(
        transport=transport, base_url="http://test"
    ) as c:
        yield c

    await http_client.aclose()
    app.dependency_overrides.clear()


async def _generate(client: AsyncClient, **body) -> list[dict[str, str]]:
    payload = {"section": "research", "prompt": "Market scan", **body}
    resp = await client.post("/api/projects/p1/generate", json=payload)
    assert resp.status_code == 200
    assert "text/event-stream" in resp.headers.get("content-type", "")
    return parse_sse_events(resp.text)


class TestHealthRoutes:
    async def test_health(self, client: AsyncClient) -> None:
        resp = await client.get("/api/health")
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "healthy"
        assert "version" in data


class TestGenerationRoutes:
    async def test_generate_streams_and_commits(
        self, client: AsyncClient, adapters: list[FakeAdapter]
    ) -> None:
        events = await _generate(client, provider="anthropic")

        assert [e["event"] for e in events] == [
            "status", "chunk", "chunk", "done",
        ]
        done = json.loads(events[-1]["data"])
        assert done["final_text"] == "# Market scan"
        assert done["model"] == "claude-sonnet-4-5-20250929"
        assert adapters[0].requests[0].credential == "test-key"

        resp = await client.get("/api/projects/p1/versions/research")
        data = resp.json()["data"]
        assert data["position"] == "1/1"
        assert data["current"]["content"] == "# Market scan"

        usage = (await client.get("/api/projects/p1/usage")).json()["data"]
        assert usage["input_tokens"] == 10
        assert usage["total_tokens"] == 14
        assert usage["formatted_cost"].startswith("$")

    async def test_default_provider_from_settings(
        self, client: AsyncClient, adapters: list[FakeAdapter]
    ) -> None:
        await _generate(client)
        assert adapters[0].descriptor.id is ProviderId.GEMINI

    async def test_background_model_resolution(
        self, client: AsyncClient, adapters: list[FakeAdapter]
    ) -> None:
        await _generate(client, provider="openai", background=True)
        assert adapters[0].background is True
        assert adapters[0].requests[0].model_id == "o3-deep-research"

    async def test_generate_error_event(self, client: AsyncClient) -> None:
        events = await _generate(client, prompt="rate limit")
        assert events[-1]["event"] == "error"
        error = json.loads(events[-1]["data"])
        assert error["error_kind"] == "rate_limited"
        assert error["retryable"] is True

        resp = await client.get("/api/projects/p1/versions/research")
        assert resp.json()["data"]["position"] == "0/0"

    async def test_generate_conflict(self, client: AsyncClient) -> None:
        sessions: SessionService = app.state.sessions
        session = await sessions.get("p1")
        running = session.coordinator.run(
            "research",
            "gemini",
            GenerationRequest(prompt="slow", model_id="gemini-2.5-flash"),
        )
        await anext(running)
        try:
            events = await _generate(client)
            assert len(events) == 1
            error = json.loads(events[0]["data"])
            assert error["error_kind"] == "conflict"

            resp = await client.post(
                "/api/projects/p1/versions/research",
                json={"content": "edit"},
            )
            assert resp.json()["success"] is False
            assert resp.json()["error"] == "Generation in progress"

            resp = await client.post(
                "/api/projects/p1/versions/requirements",
                json={"content": "edit"},
            )
            assert resp.json()["success"] is True
            assert resp.json()["data"]["position"] == "1/1"

            resp = await client.post("/api/projects/p1/cancel")
            assert resp.json()["data"] == {"cancelled": True}
        finally:
            await running.aclose()

    async def test_cancel_when_idle(self, client: AsyncClient) -> None:
        resp = await client.post("/api/projects/p1/cancel")
        assert resp.status_code == 200
        assert resp.json()["data"] == {"cancelled": False}

    @pytest.mark.parametrize(
        "body",
        [
            {"section": "research", "prompt": ""},
            {"section": "marketing", "prompt": "x"},
            {
                "section": "research",
                "prompt": "x",
                "sampling": {"temperature": 3},
            },
            {"section": "research", "prompt": "x", "provider": "cohere"},
        ],
    )
    async def test_generate_validation(
        self, client: AsyncClient, body: dict
    ) -> None:
        resp = await client.post("/api/projects/p1/generate", json=body)
        assert resp.status_code == 422


class TestVersionRoutes:
    async def test_list_versions_empty(self, client: AsyncClient) -> None:
        resp = await client.get("/api/projects/new/versions")
        assert resp.status_code == 200
        sections = resp.json()["data"]
        assert [s["section"] for s in sections] == [
            "research", "requirements", "technical_design", "build_plan",
        ]
        assert sections[0]["title"] == "Deep Research"
        assert all(s["position"] == "0/0" for s in sections)

    async def test_manual_edit_and_cycle(self, client: AsyncClient) -> None:
        for content in ("one", "two"):
            resp = await client.post(
                "/api/projects/p1/versions/requirements",
                json={"content": content},
            )
            assert resp.json()["success"] is True

        resp = await client.post(
            "/api/projects/p1/versions/requirements/cycle",
            json={"delta": -5},
        )
        data = resp.json()["data"]
        assert data["current_index"] == 0
        assert data["current"]["content"] == "one"
        assert data["position"] == "1/2"

    async def test_unknown_section(self, client: AsyncClient) -> None:
        resp = await client.get("/api/projects/p1/versions/marketing")
        assert resp.status_code == 422

    async def test_delete_project(self, client: AsyncClient) -> None:
        await _generate(client)
        resp = await client.delete("/api/projects/p1")
        assert resp.json()["success"] is True

        resp = await client.get("/api/projects/p1/versions/research")
        assert resp.json()["data"]["versions"] == []
        usage = (await client.get("/api/projects/p1/usage")).json()["data"]
        assert usage["total_tokens"] == 0


class TestModelRoutes:
    async def test_providers(self, client: AsyncClient) -> None:
        resp = await client.get("/api/providers")
        providers = {p["id"]: p for p in resp.json()["data"]}
        assert set(providers) == {"gemini", "openai", "anthropic", "openrouter"}
        assert providers["gemini"]["supports_background"] is True
        assert providers["anthropic"]["supports_background"] is False

    async def test_models_by_tier(self, client: AsyncClient) -> None:
        resp = await client.get(
            "/api/models", params={"provider": "openai", "tier": "fast"}
        )
        models = resp.json()["data"]
        assert models
        assert {m["tier"] for m in models} == {"fast"}

    async def test_openrouter_catalog(self, client: AsyncClient) -> None:
        resp = await client.get("/api/models/openrouter")
        body = resp.json()
        assert body["metadata"]["stale_error"] is None
        assert body["data"][0]["display_name"] == "Mistral AI"
        model = body["data"][0]["models"][0]
        assert model["input_cost_per_million"] == pytest.approx(2.0)
        assert model["tier"] == "mid"

    async def test_openrouter_refresh(self, client: AsyncClient) -> None:
        resp = await client.post("/api/models/openrouter/refresh")
        assert resp.json()["success"] is True
        assert resp.json()["data"] == {"count": 1}


class TestTokenRoutes:
    async def test_count_with_context(self, client: AsyncClient) -> None:
        resp = await client.post(
            "/api/tokens/count",
            json={"text": "hello", "model_id": "gpt-5-mini"},
        )
        data = resp.json()["data"]
        assert data["tokens"] == 140_000
        assert data["formatted"] == "140k"
        assert data["context_status"] == "critical"
        assert data["context_percent"] == 100.0

    async def test_count_estimate_for_openai(
        self, client: AsyncClient
    ) -> None:
        resp = await client.post(
            "/api/tokens/count",
            json={
                "text": "a" * 400,
                "model_id": "unknown-model",
                "provider": "openai",
            },
        )
        data = resp.json()["data"]
        assert data["tokens"] == 100
        assert "context_percent" not in data
