"""Request value objects shared by every provider adapter."""

from __future__ import annotations

from dataclasses import dataclass, field

from vibeflow.constants import (
    DEFAULT_TEMPERATURE,
    DEFAULT_TOP_P,
    SafetyPreset,
)
from vibeflow.resilience.cancellation import CancellationToken


@dataclass(frozen=True)
class SamplingSettings:
    """Sampling knobs. Adapters drop the ones their backend rejects."""

    temperature: float = DEFAULT_TEMPERATURE
    top_p: float | None = DEFAULT_TOP_P
    top_k: int | None = None
    seed: int | None = None
    stop_sequences: tuple[str, ...] = ()
    max_output_tokens: int | None = None
    thinking_budget: int = 0  # Gemini; 0 disables explicit budget
    safety_preset: SafetyPreset = SafetyPreset.DEFAULT  # Gemini


@dataclass(frozen=True)
class GenerationRequest:
    """One generation, immutable once submitted.

    ``token`` is shared with whoever may cancel the generation.
    """

    prompt: str
    model_id: str
    system_instruction: str = ""
    sampling: SamplingSettings = field(default_factory=SamplingSettings)
    grounding_enabled: bool = False
    credential: str = field(default="", repr=False)
    token: CancellationToken = field(
        default_factory=CancellationToken, compare=False, repr=False
    )

    @property
    def full_prompt(self) -> str:
        """System instruction and prompt as a single text."""
        if not self.system_instruction:
            return self.prompt
        return f"{self.system_instruction}\n\n{self.prompt}"
