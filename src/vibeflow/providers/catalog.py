"""OpenRouter model catalog with an explicit TTL cache.

The upstream list is large and changes rarely, so it is fetched at most
once per TTL. A failed fetch serves the stale list if one exists and
the static registry entries otherwise.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from vibeflow.constants import (
    ERROR_TRUNCATION_CHARS,
    MODEL_CACHE_TTL_SECONDS,
    ProviderId,
)
from vibeflow.providers.registry import PROVIDERS
from vibeflow.tokens.pricing import (
    PROVIDER_MODELS,
    ModelConfig,
    tier_for_price,
)

logger = logging.getLogger(__name__)

_PER_MILLION = 1_000_000
_DEFAULT_CONTEXT_LIMIT = 128_000
_DEFAULT_OUTPUT_LIMIT = 16_384

VENDOR_DISPLAY_NAMES: dict[str, str] = {
    "openai": "OpenAI",
    "anthropic": "Anthropic",
    "google": "Google",
    "meta-llama": "Meta Llama",
    "mistralai": "Mistral AI",
    "mistral": "Mistral AI",
    "cohere": "Cohere",
    "perplexity": "Perplexity",
    "deepseek": "DeepSeek",
    "qwen": "Qwen",
    "microsoft": "Microsoft",
    "nousresearch": "Nous Research",
    "openrouter": "OpenRouter",
    "x-ai": "xAI",
}


@dataclass(frozen=True)
class VendorGroup:
    """Models from one upstream vendor (the ``vendor/`` id prefix)."""

    name: str
    display_name: str
    models: tuple[ModelConfig, ...]


def vendor_display_name(vendor: str) -> str:
    return VENDOR_DISPLAY_NAMES.get(vendor) or vendor[:1].upper() + vendor[1:]


def parse_model_entry(entry: dict[str, Any]) -> ModelConfig | None:
    """One ``/models`` entry as a ModelConfig, or None if unusable.

    Prices arrive as per-token decimal strings (``"0.000003"``).
    """
    model_id = entry.get("id")
    if not isinstance(model_id, str) or not model_id:
        return None
    pricing = entry.get("pricing") or {}
    try:
        input_cost = float(pricing.get("prompt") or 0) * _PER_MILLION
        output_cost = float(pricing.get("completion") or 0) * _PER_MILLION
    except (TypeError, ValueError):
        return None
    top_provider = entry.get("top_provider") or {}
    name = entry.get("name") or model_id
    return ModelConfig(
        id=model_id,
        display_name=name,
        tier=tier_for_price(input_cost),
        provider=ProviderId.OPENROUTER,
        input_cost_per_million=input_cost,
        output_cost_per_million=output_cost,
        input_context_limit=(
            entry.get("context_length")
            or top_provider.get("context_length")
            or _DEFAULT_CONTEXT_LIMIT
        ),
        output_context_limit=(
            top_provider.get("max_completion_tokens") or _DEFAULT_OUTPUT_LIMIT
        ),
        description=(
            entry.get("description")
            or f"{name} via OpenRouter (5.5% fee applies)"
        ),
    )


def group_by_vendor(models: list[ModelConfig]) -> list[VendorGroup]:
    """Group by id prefix; groups and models sorted by display name."""
    buckets: dict[str, list[ModelConfig]] = {}
    for model in models:
        vendor = model.id.split("/", 1)[0]
        buckets.setdefault(vendor, []).append(model)
    groups = [
        VendorGroup(
            name=vendor,
            display_name=vendor_display_name(vendor),
            models=tuple(sorted(items, key=lambda m: m.display_name)),
        )
        for vendor, items in buckets.items()
    ]
    return sorted(groups, key=lambda g: g.display_name)


class ModelCatalog:
    """Cached view of the models OpenRouter currently serves."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        credential: str | None = None,
        ttl_seconds: float = MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self._credential = credential
        self._ttl = ttl_seconds
        self._clock = clock
        self._models: list[ModelConfig] | None = None
        self._fetched_at: float | None = None
        self.last_error: str | None = None

    @property
    def is_fresh(self) -> bool:
        if self._models is None or self._fetched_at is None:
            return False
        return self._clock() - self._fetched_at < self._ttl

    def invalidate(self) -> None:
        """Mark the cache stale; the stale list stays as a fallback."""
        self._fetched_at = None

    async def model_configs(self) -> list[ModelConfig]:
        if self.is_fresh and self._models is not None:
            return list(self._models)
        return await self.refetch()

    async def groups(self) -> list[VendorGroup]:
        return group_by_vendor(await self.model_configs())

    async def refetch(self) -> list[ModelConfig]:
        """Fetch now regardless of freshness."""
        try:
            models = await self._fetch()
        except (httpx.HTTPError, ValueError) as exc:
            self.last_error = str(exc)[:ERROR_TRUNCATION_CHARS]
            logger.warning(
                "event=model_catalog_fetch_failed stale=%s error=%s",
                self._models is not None,
                self.last_error,
            )
            if self._models is not None:
                return list(self._models)
            return list(PROVIDER_MODELS[ProviderId.OPENROUTER])

        self.last_error = None
        if not models:
            logger.warning("event=model_catalog_empty")
            return list(self._models or PROVIDER_MODELS[ProviderId.OPENROUTER])
        self._models = models
        self._fetched_at = self._clock()
        logger.info("event=model_catalog_refreshed count=%d", len(models))
        return list(models)

    async def _fetch(self) -> list[ModelConfig]:
        descriptor = PROVIDERS[ProviderId.OPENROUTER]
        headers = (
            descriptor.headers(self._credential)
            if self._credential
            else {"Content-Type": "application/json"}
        )
        response = await self._client.get(
            f"{descriptor.base_url}/models", headers=headers
        )
        response.raise_for_status()
        body = response.json()
        entries = body.get("data") if isinstance(body, dict) else None
        if not isinstance(entries, list):
            raise ValueError("model list response has no data array")
        models: list[ModelConfig] = []
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            model = parse_model_entry(entry)
            if model is not None:
                models.append(model)
        return models
