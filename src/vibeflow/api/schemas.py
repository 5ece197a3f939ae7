"""Request/response schemas for the HTTP API."""

from typing import Any

from pydantic import BaseModel, Field

from vibeflow.constants import (
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    ArtifactSection,
    ProviderId,
    SafetyPreset,
)
from vibeflow.providers.schemas import SamplingSettings


class APIResponse(BaseModel):
    """Standard response envelope for all API endpoints."""

    success: bool
    data: Any | None = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class SamplingParams(BaseModel):
    temperature: float = Field(default=DEFAULT_TEMPERATURE, ge=0, le=2)
    top_p: float | None = Field(default=DEFAULT_TOP_P, ge=0, le=1)
    top_k: int | None = Field(default=None, ge=1)
    seed: int | None = None
    stop_sequences: list[str] = Field(default_factory=list, max_length=4)
    max_output_tokens: int | None = Field(default=None, ge=1)
    thinking_budget: int = Field(default=0, ge=0)
    safety_preset: SafetyPreset = SafetyPreset.DEFAULT

    def to_settings(self) -> SamplingSettings:
        return SamplingSettings(
            temperature=self.temperature,
            top_p=self.top_p,
            top_k=self.top_k,
            seed=self.seed,
            stop_sequences=tuple(self.stop_sequences),
            max_output_tokens=self.max_output_tokens,
            thinking_budget=self.thinking_budget,
            safety_preset=self.safety_preset,
        )


class GenerateRequest(BaseModel):
    """Request body for POST /api/projects/{id}/generate."""

    section: ArtifactSection
    prompt: str = Field(min_length=1, max_length=500_000)
    system_instruction: str = ""
    provider: ProviderId | None = None
    model_id: str | None = None
    sampling: SamplingParams = Field(default_factory=SamplingParams)
    grounding_enabled: bool = False
    background: bool = False


class ManualEditRequest(BaseModel):
    """Request body for POST /api/projects/{id}/versions/{section}."""

    content: str


class CycleRequest(BaseModel):
    delta: int = Field(ge=-1000, le=1000)


class TokenCountRequest(BaseModel):
    """Request body for POST /api/tokens/count."""

    text: str
    model_id: str
    provider: ProviderId = ProviderId.GEMINI
