"""Token counting route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from vibeflow.api.dependencies import get_credentials, get_token_counter
from vibeflow.api.schemas import APIResponse, TokenCountRequest
from vibeflow.credentials import CredentialProvider
from vibeflow.tokens.estimator import TokenCounter
from vibeflow.tokens.pricing import (
    context_report,
    format_token_count,
    get_model,
)

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.post("/count")
async def count_tokens(
    body: TokenCountRequest,
    counter: TokenCounter = Depends(get_token_counter),
    credentials: CredentialProvider = Depends(get_credentials),
) -> APIResponse:
    """Exact count where the provider offers one, else the estimate."""
    tokens = await counter.exact_count(
        body.text,
        body.model_id,
        credentials.get(body.provider) or "",
        body.provider,
    )
    data: dict[str, object] = {
        "tokens": tokens,
        "formatted": format_token_count(tokens),
    }
    model = get_model(body.model_id)
    if model is not None:
        report = context_report(model, tokens)
        data["context_percent"] = report.percent
        data["context_status"] = report.status
        data["estimated_input_cost"] = report.estimated_cost
    return APIResponse(success=True, data=data)
