"""SQLAlchemy ORM models."""

from vibeflow.models.artifact import ArtifactCursor, ArtifactVersionRecord
from vibeflow.models.base import Base

__all__ = [
    "ArtifactCursor",
    "ArtifactVersionRecord",
    "Base",
]
