"""Artifact version ORM models.

Versions are rows ordered by ``position`` within a (project, section);
the cursor lives in its own table so navigation never touches history.
"""

import uuid
from typing import Any

from sqlalchemy import BigInteger, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from vibeflow.models.base import Base


class ArtifactVersionRecord(Base):
    __tablename__ = "artifact_versions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    project_id: Mapped[str] = mapped_column(String(100), index=True)
    section: Mapped[str] = mapped_column(String(50))
    position: Mapped[int] = mapped_column(Integer)
    content: Mapped[str] = mapped_column(Text, default="")
    timestamp: Mapped[int] = mapped_column(BigInteger)

    __table_args__ = (
        UniqueConstraint(
            "project_id", "section", "position", name="uq_version_position"
        ),
    )

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "timestamp": self.timestamp}


class ArtifactCursor(Base):
    __tablename__ = "artifact_cursors"

    project_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    section: Mapped[str] = mapped_column(String(50), primary_key=True)
    current_index: Mapped[int] = mapped_column(Integer, default=0)
