"""Environment-based configuration and shared client factories."""

from __future__ import annotations

import logging
from pathlib import Path

import httpx
from pydantic import field_validator
from pydantic_settings import BaseSettings
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from vibeflow.constants import (
    GEMINI_POLL_INTERVAL_SECONDS,
    MODEL_CACHE_TTL_SECONDS,
    OPENAI_POLL_INTERVAL_SECONDS,
    POLL_MAX_CONSECUTIVE_FAILURES,
    RETRY_BASE_DELAY_SECONDS,
    RETRY_MAX_ATTEMPTS,
    RETRY_MAX_DELAY_SECONDS,
    SESSION_CACHE_SIZE,
    TASK_MAX_DURATION_SECONDS,
    ProviderId,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Provider credentials
    gemini_api_key: str = ""
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    openrouter_api_key: str = ""

    default_provider: ProviderId = ProviderId.GEMINI

    # Retry (connection phase only)
    retry_max_attempts: int = RETRY_MAX_ATTEMPTS
    retry_base_delay_seconds: float = RETRY_BASE_DELAY_SECONDS
    retry_max_delay_seconds: float = RETRY_MAX_DELAY_SECONDS

    # Background research tasks
    gemini_poll_interval_seconds: float = GEMINI_POLL_INTERVAL_SECONDS
    openai_poll_interval_seconds: float = OPENAI_POLL_INTERVAL_SECONDS
    poll_max_consecutive_failures: int = POLL_MAX_CONSECUTIVE_FAILURES
    task_max_duration_seconds: float = TASK_MAX_DURATION_SECONDS

    # HTTP
    http_connect_timeout_seconds: float = 30.0

    # Model catalog
    model_cache_ttl_seconds: int = MODEL_CACHE_TTL_SECONDS

    # Sessions kept in memory; idle ones beyond this are evicted
    session_cache_size: int = SESSION_CACHE_SIZE

    # Database
    database_url: str = "sqlite:///data/vibeflow.db"

    # Directories
    data_dir: Path = Path("data")
    log_dir: Path = Path("logs")

    # Logging
    log_level: str = "INFO"
    debug_mode: bool = False

    # API
    cors_origins: str = "http://localhost:3000"

    @field_validator(
        "retry_max_attempts",
        "poll_max_consecutive_failures",
        "session_cache_size",
    )
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator(
        "retry_base_delay_seconds",
        "retry_max_delay_seconds",
        "gemini_poll_interval_seconds",
        "openai_poll_interval_seconds",
    )
    @classmethod
    def _non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("must not be negative")
        return v

    def api_key_for(self, provider: ProviderId) -> str:
        """Configured credential for *provider* (empty if unset)."""
        return {
            ProviderId.GEMINI: self.gemini_api_key,
            ProviderId.OPENAI: self.openai_api_key,
            ProviderId.ANTHROPIC: self.anthropic_api_key,
            ProviderId.OPENROUTER: self.openrouter_api_key,
        }[ProviderId(provider)]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "extra": "ignore",
    }


def create_http_client(
    settings: Settings, **kwargs: object
) -> httpx.AsyncClient:
    """Shared async HTTP client for provider calls.

    Reads have no timeout: streamed generations and long research
    responses can legitimately stall between chunks. Only the
    connection phase is bounded.
    """
    timeout = httpx.Timeout(
        None, connect=settings.http_connect_timeout_seconds
    )
    return httpx.AsyncClient(timeout=timeout, **kwargs)  # type: ignore[arg-type]


def create_app_engine(
    url: str, *, echo: bool = False
) -> AsyncEngine:
    """Create async SQLite engine with WAL journal mode.

    Handles URL conversion (sqlite:/// → sqlite+aiosqlite:///)
    and sets WAL mode via a pool-connect event listener so it
    fires once per raw DBAPI connection, not per ORM session.
    """
    if url.startswith("sqlite:///"):
        db_url = "sqlite+aiosqlite:///" + url[len("sqlite:///"):]
    else:
        db_url = url
    engine = create_async_engine(db_url, echo=echo)

    @event.listens_for(engine.sync_engine, "connect")
    def _set_wal_mode(
        dbapi_conn: object,
        _connection_record: object,
    ) -> None:
        cursor = dbapi_conn.cursor()  # type: ignore[union-attr]
        cursor.execute("PRAGMA journal_mode=WAL")  # pyright: ignore[reportUnknownMemberType]
        cursor.close()  # pyright: ignore[reportUnknownMemberType]

    return engine
