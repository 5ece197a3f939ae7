"""In-memory fake repositories for testing.

No SQLAlchemy, no I/O: instant operations for unit tests.
"""

from __future__ import annotations

import copy
from typing import Any


class FakeVersionRepository:
    """Dict-backed VersionRepository for testing."""

    def __init__(self) -> None:
        self._store: dict[str, dict[str, Any]] = {}
        self.save_count = 0

    async def load(self, project_id: str) -> dict[str, Any] | None:
        data = self._store.get(project_id)
        return copy.deepcopy(data) if data is not None else None

    async def save(self, project_id: str, data: dict[str, Any]) -> None:
        self._store[project_id] = copy.deepcopy(data)
        self.save_count += 1

    async def delete(self, project_id: str) -> None:
        self._store.pop(project_id, None)

    async def list_projects(self) -> list[str]:
        return sorted(self._store)
