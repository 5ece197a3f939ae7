"""SQL implementation of VersionRepository."""

from typing import Any

from sqlalchemy import delete as sa_delete
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vibeflow.models.artifact import ArtifactCursor, ArtifactVersionRecord


class SqlVersionRepository:
    """Version repo that owns its own sessions.

    Saves happen after a generation commits, outside any request scope,
    so each operation opens a short-lived session from the factory.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        self._session_factory = session_factory

    async def load(self, project_id: str) -> dict[str, Any] | None:
        async with self._session_factory() as session:
            rows = (
                await session.execute(
                    select(ArtifactVersionRecord)
                    .where(ArtifactVersionRecord.project_id == project_id)
                    .order_by(
                        ArtifactVersionRecord.section,
                        ArtifactVersionRecord.position,
                    )
                )
            ).scalars().all()
            cursors = (
                await session.execute(
                    select(ArtifactCursor).where(
                        ArtifactCursor.project_id == project_id
                    )
                )
            ).scalars().all()

        if not rows and not cursors:
            return None
        data: dict[str, Any] = {}
        for row in rows:
            section = data.setdefault(
                row.section, {"versions": [], "current_index": 0}
            )
            section["versions"].append(row.to_dict())
        for cursor in cursors:
            section = data.setdefault(
                cursor.section, {"versions": [], "current_index": 0}
            )
            section["current_index"] = cursor.current_index
        return data

    async def save(self, project_id: str, data: dict[str, Any]) -> None:
        """Replace the project's stored history with *data*."""
        async with self._session_factory() as session, session.begin():
            await self._delete_rows(session, project_id)
            for section, raw in data.items():
                for position, version in enumerate(raw.get("versions") or []):
                    session.add(
                        ArtifactVersionRecord(
                            project_id=project_id,
                            section=section,
                            position=position,
                            content=version["content"],
                            timestamp=version["timestamp"],
                        )
                    )
                session.add(
                    ArtifactCursor(
                        project_id=project_id,
                        section=section,
                        current_index=raw.get("current_index") or 0,
                    )
                )

    async def delete(self, project_id: str) -> None:
        async with self._session_factory() as session, session.begin():
            await self._delete_rows(session, project_id)

    async def list_projects(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ArtifactVersionRecord.project_id).distinct()
            )
            return sorted(result.scalars().all())

    @staticmethod
    async def _delete_rows(session: AsyncSession, project_id: str) -> None:
        await session.execute(
            sa_delete(ArtifactVersionRecord).where(
                ArtifactVersionRecord.project_id == project_id
            )
        )
        await session.execute(
            sa_delete(ArtifactCursor).where(
                ArtifactCursor.project_id == project_id
            )
        )
