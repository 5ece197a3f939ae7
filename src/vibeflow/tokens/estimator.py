"""Token counting: cheap local estimate with optional exact provider count."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

import httpx

from vibeflow.constants import ProviderId, estimate_tokens
from vibeflow.providers.registry import get_provider

logger = logging.getLogger(__name__)

__all__ = ["TokenCounter", "estimate_tokens"]


class TokenCounter:
    """Asks the provider for an exact count, falling back to the estimate.

    ``exact_count`` never raises: counting is advisory (context bars,
    cost previews) and must not block a generation.
    """

    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client
        self._counters: dict[
            str, Callable[[str, str, str], Awaitable[int | None]]
        ] = {
            ProviderId.GEMINI: self._count_gemini,
            ProviderId.ANTHROPIC: self._count_anthropic,
        }

    async def exact_count(
        self,
        text: str,
        model_id: str,
        credential: str,
        provider: ProviderId | str = ProviderId.GEMINI,
    ) -> int:
        if not text or not credential:
            return estimate_tokens(text)
        counter = self._counters.get(provider)
        if counter is None:
            return estimate_tokens(text)
        try:
            count = await counter(text, model_id, credential)
        except Exception:
            logger.warning(
                "event=token_count_failed provider=%s model=%s",
                provider,
                model_id,
                exc_info=True,
            )
            return estimate_tokens(text)
        if count is None:
            return estimate_tokens(text)
        return count

    async def _count_gemini(
        self, text: str, model_id: str, credential: str
    ) -> int | None:
        descriptor = get_provider(ProviderId.GEMINI)
        response = await self._client.post(
            f"{descriptor.base_url}/models/{model_id}:countTokens",
            headers=descriptor.headers(credential),
            json={"contents": [{"parts": [{"text": text}]}]},
        )
        response.raise_for_status()
        total = response.json().get("totalTokens")
        return total if isinstance(total, int) else None

    async def _count_anthropic(
        self, text: str, model_id: str, credential: str
    ) -> int | None:
        descriptor = get_provider(ProviderId.ANTHROPIC)
        response = await self._client.post(
            f"{descriptor.base_url}/messages/count_tokens",
            headers=descriptor.headers(credential),
            json={
                "model": model_id,
                "messages": [{"role": "user", "content": text}],
            },
        )
        response.raise_for_status()
        total = response.json().get("input_tokens")
        return total if isinstance(total, int) else None
