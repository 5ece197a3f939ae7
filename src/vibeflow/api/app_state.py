"""Typed application state, replaces untyped getattr() access."""

from __future__ import annotations

from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vibeflow.config import Settings
from vibeflow.providers.catalog import ModelCatalog
from vibeflow.services.session_service import SessionService
from vibeflow.tokens.estimator import TokenCounter


@dataclass
class AppState:
    """Typed container for app.state attributes."""

    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    http_client: httpx.AsyncClient
    sessions: SessionService
    catalog: ModelCatalog
    token_counter: TokenCounter
