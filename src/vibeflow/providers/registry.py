"""Provider descriptors: identity, endpoint, auth headers and capabilities.

Descriptors are immutable and built once at import. Everything that
varies per backend but is not wire-format handling lives here: how to
authenticate, which sampling knobs the API accepts, what a well-formed
key looks like and which models to offer by default.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from vibeflow.constants import ProviderId, SafetyPreset

OPENROUTER_REFERER = "https://vibe-coding-workflow.app"
OPENROUTER_TITLE = "Vibe-Coding Workflow"
ANTHROPIC_API_VERSION = "2023-06-01"

HeaderBuilder = Callable[[str], dict[str, str]]


@dataclass(frozen=True)
class ProviderCapabilities:
    """Sampling parameters a backend accepts."""

    supports_max_tokens: bool = True
    supports_stop: bool = True
    supports_seed: bool = False
    supports_top_k: bool = False
    supports_safety: bool = False


@dataclass(frozen=True)
class ProviderDescriptor:
    id: ProviderId
    display_name: str
    env_var: str
    base_url: str
    header_builder: HeaderBuilder
    capabilities: ProviderCapabilities
    default_models: tuple[str, ...]
    key_prefix: str = ""
    key_min_length: int = 0
    docs_url: str = ""
    get_key_url: str = ""

    def headers(self, credential: str) -> dict[str, str]:
        return self.header_builder(credential)

    @property
    def default_model(self) -> str:
        return self.default_models[0]


def _json_headers(**extra: str) -> dict[str, str]:
    return {"Content-Type": "application/json", **extra}


PROVIDERS: dict[ProviderId, ProviderDescriptor] = {
    ProviderId.GEMINI: ProviderDescriptor(
        id=ProviderId.GEMINI,
        display_name="Google Gemini",
        env_var="GEMINI_API_KEY",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        header_builder=lambda key: _json_headers(**{"x-goog-api-key": key}),
        capabilities=ProviderCapabilities(
            supports_seed=False,
            supports_top_k=True,
            supports_safety=True,
        ),
        default_models=("gemini-3-pro", "gemini-2.5-pro", "gemini-2.5-flash"),
        key_prefix="AIza",
        key_min_length=35,
        docs_url="https://ai.google.dev/docs",
        get_key_url="https://aistudio.google.com/app/apikey",
    ),
    ProviderId.OPENAI: ProviderDescriptor(
        id=ProviderId.OPENAI,
        display_name="OpenAI",
        env_var="OPENAI_API_KEY",
        base_url="https://api.openai.com/v1",
        header_builder=lambda key: _json_headers(
            Authorization=f"Bearer {key}"
        ),
        # The Responses API has no seed, stop or top_k parameters
        capabilities=ProviderCapabilities(supports_stop=False),
        default_models=(
            "gpt-5.2-2025-12-11",
            "gpt-5.2-pro-2025-12-11",
            "gpt-5.2-chat-latest",
            "gpt-5-mini",
        ),
        key_prefix="sk-",
        key_min_length=20,
        docs_url="https://platform.openai.com/docs",
        get_key_url="https://platform.openai.com/api-keys",
    ),
    ProviderId.ANTHROPIC: ProviderDescriptor(
        id=ProviderId.ANTHROPIC,
        display_name="Anthropic (Claude)",
        env_var="ANTHROPIC_API_KEY",
        base_url="https://api.anthropic.com/v1",
        header_builder=lambda key: _json_headers(**{
            "x-api-key": key,
            "anthropic-version": ANTHROPIC_API_VERSION,
        }),
        capabilities=ProviderCapabilities(supports_top_k=True),
        default_models=(
            "claude-sonnet-4-5-20250929",
            "claude-opus-4-5-20251101",
            "claude-haiku-4-5-20251001",
        ),
        key_prefix="sk-ant-",
        key_min_length=20,
        docs_url="https://docs.anthropic.com",
        get_key_url="https://console.anthropic.com/settings/keys",
    ),
    ProviderId.OPENROUTER: ProviderDescriptor(
        id=ProviderId.OPENROUTER,
        display_name="OpenRouter",
        env_var="OPENROUTER_API_KEY",
        base_url="https://openrouter.ai/api/v1",
        header_builder=lambda key: _json_headers(**{
            "Authorization": f"Bearer {key}",
            "HTTP-Referer": OPENROUTER_REFERER,
            "X-Title": OPENROUTER_TITLE,
        }),
        # Passed through to the upstream model
        capabilities=ProviderCapabilities(
            supports_seed=True, supports_top_k=True
        ),
        default_models=(
            "openai/gpt-4o",
            "anthropic/claude-sonnet-4",
            "google/gemini-2.5-pro-preview",
        ),
        key_prefix="sk-or-",
        key_min_length=20,
        docs_url="https://openrouter.ai/docs",
        get_key_url="https://openrouter.ai/keys",
    ),
}


def get_provider(provider: ProviderId | str) -> ProviderDescriptor:
    """Look up a descriptor. Raises ValueError for unknown ids."""
    return PROVIDERS[ProviderId(provider)]


def validate_key_format(provider: ProviderId | str, key: str) -> bool:
    """Cheap local check of a credential's shape (not its validity)."""
    descriptor = get_provider(provider)
    key = key.strip()
    if descriptor.key_min_length and len(key) < descriptor.key_min_length:
        return False
    if descriptor.key_prefix and not key.startswith(descriptor.key_prefix):
        return False
    return True


# ── Gemini safety presets ────────────────────────────────

GEMINI_HARM_CATEGORIES = (
    "HARM_CATEGORY_HARASSMENT",
    "HARM_CATEGORY_HATE_SPEECH",
    "HARM_CATEGORY_SEXUALLY_EXPLICIT",
    "HARM_CATEGORY_DANGEROUS_CONTENT",
)

_SAFETY_THRESHOLDS: dict[SafetyPreset, str] = {
    SafetyPreset.RELAXED: "BLOCK_NONE",
    SafetyPreset.BALANCED: "BLOCK_MEDIUM_AND_ABOVE",
    SafetyPreset.STRICT: "BLOCK_LOW_AND_ABOVE",
}


def gemini_safety_settings(
    preset: SafetyPreset | str,
) -> list[dict[str, Any]] | None:
    """Gemini ``safetySettings`` for *preset*; None keeps API defaults."""
    threshold = _SAFETY_THRESHOLDS.get(SafetyPreset(preset))
    if threshold is None:
        return None
    return [
        {"category": category, "threshold": threshold}
        for category in GEMINI_HARM_CATEGORIES
    ]
