"""Provider and model listing routes."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, Depends, Query

from vibeflow.api.dependencies import get_catalog
from vibeflow.api.schemas import APIResponse
from vibeflow.constants import ProviderId
from vibeflow.providers.catalog import ModelCatalog, VendorGroup
from vibeflow.providers.factory import supports_background
from vibeflow.providers.registry import PROVIDERS
from vibeflow.tokens.pricing import ModelConfig, ModelTier, models_for_provider

router = APIRouter(prefix="/api", tags=["models"])


def model_to_dict(model: ModelConfig) -> dict[str, Any]:
    data = asdict(model)
    data["default_reasoning_effort"] = model.default_reasoning_effort
    return data


def _group_to_dict(group: VendorGroup) -> dict[str, Any]:
    return {
        "name": group.name,
        "display_name": group.display_name,
        "models": [model_to_dict(m) for m in group.models],
    }


@router.get("/providers")
async def list_providers() -> APIResponse:
    """Supported providers with their capabilities and defaults."""
    return APIResponse(
        success=True,
        data=[
            {
                "id": d.id,
                "display_name": d.display_name,
                "env_var": d.env_var,
                "default_models": list(d.default_models),
                "capabilities": asdict(d.capabilities),
                "supports_background": supports_background(d.id),
                "docs_url": d.docs_url,
                "get_key_url": d.get_key_url,
            }
            for d in PROVIDERS.values()
        ],
    )


@router.get("/models")
async def list_models(
    provider: ProviderId = Query(...),
    tier: ModelTier | None = Query(default=None),
) -> APIResponse:
    """Static model registry for one provider."""
    return APIResponse(
        success=True,
        data=[model_to_dict(m) for m in models_for_provider(provider, tier)],
    )


@router.get("/models/openrouter")
async def list_openrouter_models(
    catalog: ModelCatalog = Depends(get_catalog),
) -> APIResponse:
    """Live OpenRouter models grouped by upstream vendor (cached)."""
    groups = await catalog.groups()
    return APIResponse(
        success=True,
        data=[_group_to_dict(g) for g in groups],
        metadata={"stale_error": catalog.last_error},
    )


@router.post("/models/openrouter/refresh")
async def refresh_openrouter_models(
    catalog: ModelCatalog = Depends(get_catalog),
) -> APIResponse:
    catalog.invalidate()
    models = await catalog.refetch()
    return APIResponse(
        success=catalog.last_error is None,
        data={"count": len(models)},
        error=catalog.last_error,
    )
