"""Credential lookup for provider calls."""

from __future__ import annotations

from typing import Protocol

from vibeflow.config import Settings
from vibeflow.constants import ProviderId
from vibeflow.providers.registry import ProviderDescriptor
from vibeflow.resilience.errors import ConfigurationError


class CredentialProvider(Protocol):
    def get(self, provider: ProviderId) -> str | None: ...


class SettingsCredentials:
    """Reads provider keys from :class:`Settings` (env / ``.env``)."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or Settings()

    def get(self, provider: ProviderId) -> str | None:
        return self._settings.api_key_for(provider) or None


class StaticCredentials:
    """Fixed mapping, for tests and one-off CLI runs."""

    def __init__(self, keys: dict[ProviderId, str] | None = None) -> None:
        self._keys = dict(keys or {})

    def get(self, provider: ProviderId) -> str | None:
        return self._keys.get(ProviderId(provider)) or None


def require_credential(
    descriptor: ProviderDescriptor, credential: str | None
) -> str:
    """Return the stripped credential or raise ConfigurationError."""
    if credential is None or not credential.strip():
        raise ConfigurationError(
            f"No API key configured for {descriptor.display_name}",
            provider=descriptor.id,
        )
    return credential.strip()
