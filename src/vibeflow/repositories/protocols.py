"""Protocol-based repository interfaces.

SQL implementations satisfy these protocols structurally (no inheritance).
Test doubles can be plain classes or mocks matching the same signature.
"""

from typing import Any, Protocol


class VersionRepository(Protocol):
    """Persists an ArtifactVersionStore's plain-dict form per project."""

    async def load(self, project_id: str) -> dict[str, Any] | None: ...
    async def save(self, project_id: str, data: dict[str, Any]) -> None: ...
    async def delete(self, project_id: str) -> None: ...
    async def list_projects(self) -> list[str]: ...
