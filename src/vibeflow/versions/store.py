"""Append-only version history with a per-section cursor.

Every generation commit and manual edit lands here via :meth:`append`.
Versions are never edited or removed one at a time; navigation only
moves the cursor.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from vibeflow.constants import ArtifactSection


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class ArtifactVersion:
    content: str
    timestamp: int  # epoch ms

    def to_dict(self) -> dict[str, Any]:
        return {"content": self.content, "timestamp": self.timestamp}


@dataclass
class _SectionHistory:
    versions: list[ArtifactVersion] = field(default_factory=list)
    current_index: int = 0


class ArtifactVersionStore:
    """Versions for every section of one project.

    Invariant per section: ``0 <= current_index < len(versions)`` when
    there are versions, ``current_index == 0`` otherwise.
    """

    def __init__(self, clock: Callable[[], int] | None = None) -> None:
        self._clock = clock or _now_ms
        self._sections: dict[ArtifactSection, _SectionHistory] = {
            section: _SectionHistory() for section in ArtifactSection
        }

    def _history(self, section: ArtifactSection | str) -> _SectionHistory:
        return self._sections[ArtifactSection(section)]

    def append(
        self, section: ArtifactSection | str, content: str
    ) -> ArtifactVersion:
        """Add a version and point the cursor at it."""
        history = self._history(section)
        version = ArtifactVersion(content=content, timestamp=self._clock())
        history.versions.append(version)
        history.current_index = len(history.versions) - 1
        return version

    def cycle(self, section: ArtifactSection | str, delta: int) -> int:
        """Move the cursor by *delta*, clamped to the history bounds.

        Returns the new index. Moving past either end is a no-op.
        """
        history = self._history(section)
        if not history.versions:
            return 0
        history.current_index = max(
            0, min(history.current_index + delta, len(history.versions) - 1)
        )
        return history.current_index

    def current(self, section: ArtifactSection | str) -> ArtifactVersion | None:
        history = self._history(section)
        if not history.versions:
            return None
        return history.versions[history.current_index]

    def versions(self, section: ArtifactSection | str) -> list[ArtifactVersion]:
        return list(self._history(section).versions)

    def current_index(self, section: ArtifactSection | str) -> int:
        return self._history(section).current_index

    def position_label(self, section: ArtifactSection | str) -> str:
        """1-based ``"i/N"``, or ``"0/0"`` with no versions."""
        history = self._history(section)
        if not history.versions:
            return "0/0"
        return f"{history.current_index + 1}/{len(history.versions)}"

    def clear(self) -> None:
        for history in self._sections.values():
            history.versions.clear()
            history.current_index = 0

    @property
    def is_empty(self) -> bool:
        return all(not h.versions for h in self._sections.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            section.value: {
                "versions": [v.to_dict() for v in history.versions],
                "current_index": history.current_index,
            }
            for section, history in self._sections.items()
        }

    @classmethod
    def from_dict(
        cls,
        data: dict[str, Any],
        clock: Callable[[], int] | None = None,
    ) -> ArtifactVersionStore:
        """Rebuild from :meth:`to_dict` output.

        Unknown sections are ignored and an out-of-range cursor is
        clamped, so a damaged record still loads.
        """
        store = cls(clock=clock)
        for key, raw in data.items():
            try:
                section = ArtifactSection(key)
            except ValueError:
                continue
            history = store._sections[section]
            history.versions = [
                ArtifactVersion(
                    content=str(v["content"]), timestamp=int(v["timestamp"])
                )
                for v in raw.get("versions") or []
            ]
            if history.versions:
                index = int(raw.get("current_index") or 0)
                history.current_index = max(
                    0, min(index, len(history.versions) - 1)
                )
        return store
