"""Adapter lookup tables keyed on :class:`ProviderId`.

Adding a backend means adding a descriptor to the registry and a row
here; nothing else branches on the provider.
"""

from __future__ import annotations

import httpx

from vibeflow.config import Settings
from vibeflow.constants import (
    GEMINI_DEEP_RESEARCH_AGENT,
    OPENAI_DEEP_RESEARCH_MODEL,
    ProviderId,
)
from vibeflow.providers.anthropic import AnthropicAdapter
from vibeflow.providers.base import (
    BackgroundTaskAdapter,
    ProviderAdapter,
    StreamingChatAdapter,
)
from vibeflow.providers.gemini import GeminiAdapter, GeminiDeepResearchAdapter
from vibeflow.providers.openai import (
    OpenAIDeepResearchAdapter,
    OpenAIResponsesAdapter,
)
from vibeflow.providers.openrouter import OpenRouterAdapter
from vibeflow.providers.registry import get_provider
from vibeflow.resilience.errors import ConfigurationError

STREAMING_ADAPTERS: dict[ProviderId, type[StreamingChatAdapter]] = {
    ProviderId.GEMINI: GeminiAdapter,
    ProviderId.OPENAI: OpenAIResponsesAdapter,
    ProviderId.ANTHROPIC: AnthropicAdapter,
    ProviderId.OPENROUTER: OpenRouterAdapter,
}

BACKGROUND_ADAPTERS: dict[ProviderId, type[BackgroundTaskAdapter]] = {
    ProviderId.GEMINI: GeminiDeepResearchAdapter,
    ProviderId.OPENAI: OpenAIDeepResearchAdapter,
}


def supports_background(provider: ProviderId | str) -> bool:
    return ProviderId(provider) in BACKGROUND_ADAPTERS


def resolve_model_id(
    provider: ProviderId | str, model_id: str | None, background: bool
) -> str:
    """Explicit model, else the deep research model or provider default."""
    if model_id:
        return model_id
    provider = ProviderId(provider)
    if background:
        if provider is ProviderId.OPENAI:
            return OPENAI_DEEP_RESEARCH_MODEL
        return GEMINI_DEEP_RESEARCH_AGENT
    return get_provider(provider).default_model


def build_adapter(
    provider: ProviderId | str,
    client: httpx.AsyncClient,
    settings: Settings | None = None,
    *,
    background: bool = False,
) -> ProviderAdapter:
    """Instantiate the adapter for *provider*.

    Raises:
        ConfigurationError: *background* was requested for a provider
            without a deep research agent.
    """
    provider = ProviderId(provider)
    if background:
        adapter_cls = BACKGROUND_ADAPTERS.get(provider)
        if adapter_cls is None:
            raise ConfigurationError(
                f"{get_provider(provider).display_name} has no "
                "deep research agent",
                provider=provider,
            )
        return adapter_cls(client, settings)
    return STREAMING_ADAPTERS[provider](client, settings)
