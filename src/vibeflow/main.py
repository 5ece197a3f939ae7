"""FastAPI application with lifespan startup."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import async_sessionmaker

from vibeflow import __version__
from vibeflow.api.app_state import AppState
from vibeflow.api.routes import generation, health, models, tokens, versions
from vibeflow.config import Settings, create_app_engine, create_http_client
from vibeflow.constants import ProviderId
from vibeflow.credentials import SettingsCredentials
from vibeflow.logger import GenerationLogger
from vibeflow.logging_config import setup_logging
from vibeflow.models.base import Base
from vibeflow.providers.base import ProviderAdapter
from vibeflow.providers.catalog import ModelCatalog
from vibeflow.providers.factory import build_adapter
from vibeflow.repositories.version_repo import SqlVersionRepository
from vibeflow.services.session_service import SessionService
from vibeflow.tokens.estimator import TokenCounter

_settings = Settings()
setup_logging(_settings.log_level)

_logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    # 1. Use module-level settings (single source of truth)
    settings = _settings

    # 2. Create async SQLite engine (WAL set via pool-connect listener)
    if settings.database_url.startswith("sqlite:///"):
        settings.data_dir.mkdir(parents=True, exist_ok=True)
    engine = create_app_engine(
        settings.database_url, echo=settings.debug_mode
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # 3. Create session factory and shared HTTP client
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    http_client = create_http_client(settings)

    # 4. Initialize logger
    generation_logger = GenerationLogger(
        log_dir=settings.log_dir, level=settings.log_level
    )

    # 5. Initialize services
    credentials = SettingsCredentials(settings)

    def select_adapter(
        provider: ProviderId, background: bool
    ) -> ProviderAdapter:
        return build_adapter(
            provider, http_client, settings, background=background
        )

    sessions = SessionService(
        SqlVersionRepository(session_factory),
        select_adapter,
        credentials=credentials,
        generation_logger=generation_logger,
        max_sessions=settings.session_cache_size,
    )
    catalog = ModelCatalog(
        http_client,
        credential=settings.openrouter_api_key or None,
        ttl_seconds=settings.model_cache_ttl_seconds,
    )
    token_counter = TokenCounter(http_client)

    # 6. Store in app.state
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.http_client = http_client
    app.state.logger = generation_logger
    app.state.credentials = credentials
    app.state.sessions = sessions
    app.state.catalog = catalog
    app.state.token_counter = token_counter
    app.state.typed = AppState(
        settings=settings,
        session_factory=session_factory,
        http_client=http_client,
        sessions=sessions,
        catalog=catalog,
        token_counter=token_counter,
    )

    configured = [p for p in ProviderId if settings.api_key_for(p)]
    if not configured:
        _logger.warning("event=no_provider_keys action=generation_disabled")
    else:
        _logger.info(
            "event=startup providers=%s",
            ",".join(configured),
        )

    yield

    # Cleanup
    await http_client.aclose()
    await engine.dispose()


app = FastAPI(
    title="Vibeflow",
    description=(
        "Multi-provider generation orchestration --"
        " research, requirements, design and build plans"
    ),
    version=__version__,
    openapi_url="/api/openapi.json",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan,
)

_cors_origins = [
    o.strip()
    for o in _settings.cors_origins.split(",")
    if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Cache-Control"],
    allow_credentials=False,
)

# Routes
app.include_router(health.router)
app.include_router(generation.router)
app.include_router(versions.router)
app.include_router(models.router)
app.include_router(tokens.router)
