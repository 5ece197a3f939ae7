"""Tests for provider descriptors."""

import pytest

from vibeflow.constants import ProviderId, SafetyPreset
from vibeflow.providers.registry import (
    PROVIDERS,
    gemini_safety_settings,
    get_provider,
    validate_key_format,
)


def test_every_provider_registered() -> None:
    assert set(PROVIDERS) == set(ProviderId)
    for provider_id, descriptor in PROVIDERS.items():
        assert descriptor.id is provider_id
        assert descriptor.default_models


def test_get_provider_accepts_string() -> None:
    assert get_provider("anthropic").display_name == "Anthropic (Claude)"


def test_get_provider_unknown() -> None:
    with pytest.raises(ValueError):
        get_provider("cohere")


@pytest.mark.parametrize(
    ("provider", "key", "valid"),
    [
        (ProviderId.OPENAI, "sk-" + "a" * 30, True),
        (ProviderId.OPENAI, "pk-" + "a" * 30, False),
        (ProviderId.ANTHROPIC, "sk-ant-" + "a" * 30, True),
        (ProviderId.ANTHROPIC, "sk-" + "a" * 30, False),
        (ProviderId.GEMINI, "AIza" + "b" * 35, True),
        (ProviderId.GEMINI, "AIza123", False),
        (ProviderId.OPENROUTER, "  sk-or-" + "c" * 20 + "  ", True),
    ],
)
def test_validate_key_format(
    provider: ProviderId, key: str, valid: bool
) -> None:
    assert validate_key_format(provider, key) is valid


def test_auth_headers() -> None:
    gemini = PROVIDERS[ProviderId.GEMINI].headers("k")
    assert gemini["x-goog-api-key"] == "k"
    assert "Authorization" not in gemini
    openai = PROVIDERS[ProviderId.OPENAI].headers("k")
    assert openai["Authorization"] == "Bearer k"


def test_safety_presets() -> None:
    assert gemini_safety_settings(SafetyPreset.DEFAULT) is None
    relaxed = gemini_safety_settings("relaxed")
    assert relaxed is not None
    assert len(relaxed) == 4
    assert all(s["threshold"] == "BLOCK_NONE" for s in relaxed)
