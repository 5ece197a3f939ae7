"""Artifact version routes: history, navigation, manual edits."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from vibeflow.api.dependencies import get_sessions
from vibeflow.api.schemas import APIResponse, CycleRequest, ManualEditRequest
from vibeflow.constants import SECTION_TITLES, ArtifactSection
from vibeflow.services.generation_service import GenerationInProgressError
from vibeflow.services.session_service import SessionService
from vibeflow.tokens.pricing import format_cost
from vibeflow.versions.store import ArtifactVersionStore

router = APIRouter(
    prefix="/api/projects/{project_id}", tags=["versions"]
)


def _section_view(
    store: ArtifactVersionStore, section: ArtifactSection
) -> dict[str, Any]:
    current = store.current(section)
    return {
        "section": section.value,
        "title": SECTION_TITLES[section],
        "current_index": store.current_index(section),
        "position": store.position_label(section),
        "current": current.to_dict() if current else None,
        "versions": [v.to_dict() for v in store.versions(section)],
    }


@router.get("/versions")
async def list_versions(
    project_id: str,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    """Version history for every section of a project."""
    session = await sessions.get(project_id)
    return APIResponse(
        success=True,
        data=[_section_view(session.store, s) for s in ArtifactSection],
    )


@router.get("/versions/{section}")
async def get_versions(
    project_id: str,
    section: ArtifactSection,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    session = await sessions.get(project_id)
    return APIResponse(
        success=True, data=_section_view(session.store, section)
    )


@router.post("/versions/{section}")
async def commit_manual_edit(
    project_id: str,
    section: ArtifactSection,
    body: ManualEditRequest,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    """Save a user edit as a new version."""
    session = await sessions.get(project_id)
    try:
        await sessions.commit_manual_edit(
            project_id, section, body.content
        )
    except GenerationInProgressError:
        return APIResponse(
            success=False, error="Generation in progress"
        )
    return APIResponse(
        success=True, data=_section_view(session.store, section)
    )


@router.post("/versions/{section}/cycle")
async def cycle_version(
    project_id: str,
    section: ArtifactSection,
    body: CycleRequest,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    """Move the section's cursor; clamped at both ends."""
    session = await sessions.get(project_id)
    await sessions.cycle(project_id, section, body.delta)
    return APIResponse(
        success=True, data=_section_view(session.store, section)
    )


@router.get("/usage")
async def get_usage(
    project_id: str,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    session = await sessions.get(project_id)
    usage = session.usage
    return APIResponse(
        success=True,
        data={
            **usage.to_dict(),
            "formatted_cost": format_cost(usage.estimated_cost),
        },
    )


@router.delete("")
async def delete_project(
    project_id: str,
    sessions: SessionService = Depends(get_sessions),
) -> APIResponse:
    """Cancel any generation and delete all versions."""
    await sessions.delete_project(project_id)
    return APIResponse(success=True)
