"""Shared test fixtures: settings, mock HTTP, in-memory SQLite."""

import os

# Force demo API keys for all tests: no real provider calls.
# These are set unconditionally at import time, so even if you have
# real keys in your shell environment, pytest overwrites them before
# any Settings() is created.
os.environ["GEMINI_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENAI_API_KEY"] = "for-demo-purposes-only"
os.environ["ANTHROPIC_API_KEY"] = "for-demo-purposes-only"
os.environ["OPENROUTER_API_KEY"] = "for-demo-purposes-only"

from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from vibeflow.config import Settings
from vibeflow.models.base import Base


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with zero backoff and poll delays so tests run instantly."""
    return Settings(
        retry_base_delay_seconds=0,
        retry_max_delay_seconds=0,
        gemini_poll_interval_seconds=0,
        openai_poll_interval_seconds=0,
        database_url="sqlite:///:memory:",
        log_dir=tmp_path / "logs",
        data_dir=tmp_path / "data",
    )


@pytest.fixture
async def engine():
    """Function-scoped in-memory engine with tables created."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)
