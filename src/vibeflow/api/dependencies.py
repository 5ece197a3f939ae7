"""FastAPI dependency injection for service access."""

from __future__ import annotations

from fastapi import Request

from vibeflow.config import Settings
from vibeflow.credentials import CredentialProvider, SettingsCredentials
from vibeflow.providers.catalog import ModelCatalog
from vibeflow.services.session_service import SessionService
from vibeflow.tokens.estimator import TokenCounter


def get_settings(request: Request) -> Settings:
    return request.app.state.settings  # type: ignore[no-any-return]


def get_sessions(request: Request) -> SessionService:
    """Get SessionService from app.state."""
    return request.app.state.sessions  # type: ignore[no-any-return]


def get_catalog(request: Request) -> ModelCatalog:
    return request.app.state.catalog  # type: ignore[no-any-return]


def get_token_counter(request: Request) -> TokenCounter:
    return request.app.state.token_counter  # type: ignore[no-any-return]


def get_credentials(request: Request) -> CredentialProvider:
    """Credential provider; tests may install a static one on app.state."""
    credentials = getattr(request.app.state, "credentials", None)
    if credentials is not None:
        return credentials  # type: ignore[no-any-return]
    return SettingsCredentials(request.app.state.settings)
