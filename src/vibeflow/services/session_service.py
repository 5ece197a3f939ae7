"""Per-project sessions: version store, usage totals and coordinator.

Sessions are loaded lazily from the version repository and written
back after every change to the store. At most ``max_sessions`` stay in
memory; the least recently used idle ones are evicted. Version history
survives eviction through the repository, usage totals do not.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from vibeflow.constants import SESSION_CACHE_SIZE, ArtifactSection, ProviderId
from vibeflow.credentials import CredentialProvider
from vibeflow.logger import GenerationLogger
from vibeflow.providers.schemas import GenerationRequest
from vibeflow.repositories.protocols import VersionRepository
from vibeflow.services.generation_service import (
    AdapterSelector,
    GenerationCoordinator,
)
from vibeflow.streaming.events import DoneEvent, StreamEvent
from vibeflow.tokens.usage import TokenUsage
from vibeflow.versions.store import ArtifactVersion, ArtifactVersionStore

logger = logging.getLogger(__name__)


@dataclass
class ProjectSession:
    project_id: str
    store: ArtifactVersionStore
    usage: TokenUsage
    coordinator: GenerationCoordinator


class SessionService:
    def __init__(
        self,
        repo: VersionRepository,
        adapter_selector: AdapterSelector,
        *,
        credentials: CredentialProvider | None = None,
        generation_logger: GenerationLogger | None = None,
        max_sessions: int = SESSION_CACHE_SIZE,
    ) -> None:
        self._repo = repo
        self._adapter_selector = adapter_selector
        self._credentials = credentials
        self._generation_logger = generation_logger
        self._max_sessions = max_sessions
        self._sessions: OrderedDict[str, ProjectSession] = OrderedDict()
        self._load_locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, project_id: str) -> bool:
        return project_id in self._sessions

    async def get(self, project_id: str) -> ProjectSession:
        """Cached session for *project_id*, loading it once if needed."""
        session = self._cached(project_id)
        if session is not None:
            return session
        lock = self._load_locks.setdefault(project_id, asyncio.Lock())
        async with lock:
            # Another caller may have loaded it while we waited
            session = self._cached(project_id)
            if session is not None:
                return session
            data = await self._repo.load(project_id)
            session = self._build(project_id, data)
            self._sessions[project_id] = session
        self._load_locks.pop(project_id, None)
        logger.debug(
            "event=session_loaded project_id=%s persisted=%s",
            project_id,
            data is not None,
        )
        self._evict_idle(keep=project_id)
        return session

    def _cached(self, project_id: str) -> ProjectSession | None:
        session = self._sessions.get(project_id)
        if session is not None:
            self._sessions.move_to_end(project_id)
        return session

    def _build(
        self, project_id: str, data: dict[str, Any] | None
    ) -> ProjectSession:
        store = (
            ArtifactVersionStore.from_dict(data)
            if data is not None
            else ArtifactVersionStore()
        )
        usage = TokenUsage()
        return ProjectSession(
            project_id=project_id,
            store=store,
            usage=usage,
            coordinator=GenerationCoordinator(
                store,
                usage,
                self._adapter_selector,
                credentials=self._credentials,
                generation_logger=self._generation_logger,
            ),
        )

    def _evict_idle(self, keep: str) -> None:
        """Drop least recently used sessions that are not generating."""
        excess = len(self._sessions) - self._max_sessions
        if excess <= 0:
            return
        for project_id in list(self._sessions):
            if excess <= 0:
                break
            if project_id == keep:
                continue
            if self._sessions[project_id].coordinator.is_generating:
                continue
            del self._sessions[project_id]
            excess -= 1
            logger.debug("event=session_evicted project_id=%s", project_id)

    async def _save(self, session: ProjectSession) -> None:
        await self._repo.save(session.project_id, session.store.to_dict())

    async def generate(
        self,
        project_id: str,
        section: ArtifactSection | str,
        provider: ProviderId | str,
        request: GenerationRequest,
        *,
        background: bool = False,
    ) -> AsyncIterator[StreamEvent]:
        """Run a generation and persist the store once it commits."""
        session = await self.get(project_id)
        async for event in session.coordinator.run(
            section, provider, request, background=background
        ):
            if isinstance(event, DoneEvent):
                await self._save(session)
            yield event

    def cancel(self, project_id: str) -> bool:
        session = self._sessions.get(project_id)
        if session is None:
            return False
        return session.coordinator.cancel()

    async def commit_manual_edit(
        self,
        project_id: str,
        section: ArtifactSection | str,
        content: str,
    ) -> ArtifactVersion:
        session = await self.get(project_id)
        version = session.coordinator.commit_manual_edit(section, content)
        await self._save(session)
        return version

    async def cycle(
        self,
        project_id: str,
        section: ArtifactSection | str,
        delta: int,
    ) -> int:
        session = await self.get(project_id)
        index = session.store.cycle(section, delta)
        await self._save(session)
        return index

    async def delete_project(self, project_id: str) -> None:
        """Cancel any generation and drop all history for the project."""
        session = self._sessions.pop(project_id, None)
        if session is not None:
            session.coordinator.cancel()
            session.store.clear()
            session.usage.reset()
        await self._repo.delete(project_id)
        logger.info("event=project_deleted project_id=%s", project_id)
