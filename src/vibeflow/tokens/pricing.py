"""Model registry, pricing and context-window utilities.

Prices are USD per million tokens. Some Gemini models charge more once
the prompt exceeds a threshold; OpenRouter adds a platform fee on top
of the upstream price.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from vibeflow.constants import (
    CONTEXT_CRITICAL_PERCENT,
    CONTEXT_WARNING_PERCENT,
    OPENROUTER_FEE_MULTIPLIER,
    ContextStatus,
    ProviderId,
)

_PER_MILLION = 1_000_000


class ModelTier(StrEnum):
    COMPLEX = "complex"
    MID = "mid"
    FAST = "fast"


class ReasoningEffort(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    XHIGH = "xhigh"


@dataclass(frozen=True)
class TieredPricing:
    """Higher rates that apply when input exceeds ``threshold`` tokens."""

    threshold: int
    input_cost_above: float
    output_cost_above: float


@dataclass(frozen=True)
class ModelConfig:
    id: str
    display_name: str
    tier: ModelTier
    provider: ProviderId
    input_cost_per_million: float
    output_cost_per_million: float
    input_context_limit: int
    output_context_limit: int
    description: str = ""
    supports_thinking: bool = False
    reasoning_efforts: tuple[ReasoningEffort, ...] = ()
    tiered_pricing: TieredPricing | None = None

    @property
    def default_reasoning_effort(self) -> ReasoningEffort | None:
        if not self.reasoning_efforts:
            return None
        if ReasoningEffort.MEDIUM in self.reasoning_efforts:
            return ReasoningEffort.MEDIUM
        return self.reasoning_efforts[0]


# ── Registry ─────────────────────────────────────────────

PROVIDER_MODELS: dict[ProviderId, tuple[ModelConfig, ...]] = {
    ProviderId.OPENAI: (
        ModelConfig(
            id="gpt-5.2-pro-2025-12-11",
            display_name="GPT-5.2 Pro",
            tier=ModelTier.COMPLEX,
            provider=ProviderId.OPENAI,
            input_cost_per_million=21.00,
            output_cost_per_million=168.00,
            input_context_limit=400_000,
            output_context_limit=128_000,
            description="Highest accuracy, designed to tackle tough problems.",
            reasoning_efforts=(
                ReasoningEffort.MEDIUM,
                ReasoningEffort.HIGH,
                ReasoningEffort.XHIGH,
            ),
        ),
        ModelConfig(
            id="gpt-5.2-2025-12-11",
            display_name="GPT-5.2 Thinking",
            tier=ModelTier.MID,
            provider=ProviderId.OPENAI,
            input_cost_per_million=1.75,
            output_cost_per_million=14.00,
            input_context_limit=400_000,
            output_context_limit=128_000,
            description="Flagship model for coding and agentic tasks.",
            reasoning_efforts=tuple(ReasoningEffort),
        ),
        ModelConfig(
            id="gpt-5.2-chat-latest",
            display_name="GPT-5.2 Instant",
            tier=ModelTier.FAST,
            provider=ProviderId.OPENAI,
            input_cost_per_million=1.75,
            output_cost_per_million=14.00,
            input_context_limit=128_000,
            output_context_limit=16_384,
            description="Optimized for speed with smaller context window.",
        ),
        ModelConfig(
            id="gpt-5-mini",
            display_name="GPT-5 Mini",
            tier=ModelTier.FAST,
            provider=ProviderId.OPENAI,
            input_cost_per_million=0.25,
            output_cost_per_million=2.00,
            input_context_limit=128_000,
            output_context_limit=16_384,
            description="Budget-friendly option for simple tasks.",
        ),
        ModelConfig(
            id="gpt-5-nano",
            display_name="GPT-5 Nano",
            tier=ModelTier.FAST,
            provider=ProviderId.OPENAI,
            input_cost_per_million=0.05,
            output_cost_per_million=0.40,
            input_context_limit=128_000,
            output_context_limit=16_384,
            description="Lowest cost option for high-volume calls.",
        ),
        ModelConfig(
            id="o3-deep-research",
            display_name="o3 Deep Research",
            tier=ModelTier.COMPLEX,
            provider=ProviderId.OPENAI,
            input_cost_per_million=10.00,
            output_cost_per_million=40.00,
            input_context_limit=200_000,
            output_context_limit=100_000,
            description="Background research agent with web search.",
        ),
    ),
    ProviderId.ANTHROPIC: (
        ModelConfig(
            id="claude-opus-4-5-20251101",
            display_name="Claude Opus 4.5",
            tier=ModelTier.COMPLEX,
            provider=ProviderId.ANTHROPIC,
            input_cost_per_million=5.00,
            output_cost_per_million=25.00,
            input_context_limit=200_000,
            output_context_limit=64_000,
            description="Premium model with maximum intelligence.",
        ),
        ModelConfig(
            id="claude-sonnet-4-5-20250929",
            display_name="Claude Sonnet 4.5",
            tier=ModelTier.MID,
            provider=ProviderId.ANTHROPIC,
            input_cost_per_million=3.00,
            output_cost_per_million=15.00,
            input_context_limit=200_000,
            output_context_limit=64_000,
            description="Smart model for complex agents and coding.",
        ),
        ModelConfig(
            id="claude-haiku-4-5-20251001",
            display_name="Claude Haiku 4.5",
            tier=ModelTier.FAST,
            provider=ProviderId.ANTHROPIC,
            input_cost_per_million=1.00,
            output_cost_per_million=5.00,
            input_context_limit=200_000,
            output_context_limit=64_000,
            description="Fastest model with near-frontier intelligence.",
        ),
    ),
    ProviderId.GEMINI: (
        ModelConfig(
            id="gemini-3-pro",
            display_name="Gemini 3 Pro",
            tier=ModelTier.COMPLEX,
            provider=ProviderId.GEMINI,
            input_cost_per_million=2.00,
            output_cost_per_million=12.00,
            input_context_limit=1_000_000,
            output_context_limit=65_536,
            description="Top reasoning and multimodal support.",
            supports_thinking=True,
            tiered_pricing=TieredPricing(200_000, 4.00, 18.00),
        ),
        ModelConfig(
            id="gemini-2.5-pro",
            display_name="Gemini 2.5 Pro",
            tier=ModelTier.MID,
            provider=ProviderId.GEMINI,
            input_cost_per_million=1.25,
            output_cost_per_million=10.00,
            input_context_limit=1_000_000,
            output_context_limit=65_536,
            description="Balanced price/performance.",
            supports_thinking=True,
            tiered_pricing=TieredPricing(200_000, 2.50, 15.00),
        ),
        ModelConfig(
            id="gemini-2.5-flash",
            display_name="Gemini 2.5 Flash",
            tier=ModelTier.FAST,
            provider=ProviderId.GEMINI,
            input_cost_per_million=0.30,
            output_cost_per_million=2.50,
            input_context_limit=1_000_000,
            output_context_limit=65_536,
            description="Speed-optimized. Lowest cost in the Gemini family.",
            supports_thinking=True,
        ),
    ),
    ProviderId.OPENROUTER: (
        # Placeholders used when the live catalog is unavailable
        ModelConfig(
            id="openai/gpt-4o",
            display_name="GPT-4o (via OpenRouter)",
            tier=ModelTier.MID,
            provider=ProviderId.OPENROUTER,
            input_cost_per_million=2.50,
            output_cost_per_million=10.00,
            input_context_limit=128_000,
            output_context_limit=16_384,
            description="OpenAI GPT-4o through OpenRouter.",
        ),
        ModelConfig(
            id="anthropic/claude-sonnet-4",
            display_name="Claude Sonnet 4 (via OpenRouter)",
            tier=ModelTier.MID,
            provider=ProviderId.OPENROUTER,
            input_cost_per_million=3.00,
            output_cost_per_million=15.00,
            input_context_limit=200_000,
            output_context_limit=64_000,
            description="Anthropic Claude through OpenRouter.",
        ),
        ModelConfig(
            id="google/gemini-2.5-pro-preview",
            display_name="Gemini 2.5 Pro (via OpenRouter)",
            tier=ModelTier.MID,
            provider=ProviderId.OPENROUTER,
            input_cost_per_million=1.25,
            output_cost_per_million=10.00,
            input_context_limit=1_000_000,
            output_context_limit=65_536,
            description="Google Gemini through OpenRouter.",
        ),
    ),
}

_MODELS_BY_ID: dict[str, ModelConfig] = {
    m.id: m for models in PROVIDER_MODELS.values() for m in models
}


def get_model(model_id: str) -> ModelConfig | None:
    return _MODELS_BY_ID.get(model_id)


def models_for_provider(
    provider: ProviderId, tier: ModelTier | None = None
) -> list[ModelConfig]:
    models = PROVIDER_MODELS.get(ProviderId(provider), ())
    return [m for m in models if tier is None or m.tier is tier]


def tier_for_price(input_cost_per_million: float) -> ModelTier:
    """Classify a dynamically listed model by its input price."""
    if input_cost_per_million < 1:
        return ModelTier.FAST
    if input_cost_per_million > 10:
        return ModelTier.COMPLEX
    return ModelTier.MID


# ── Pricing ──────────────────────────────────────────────


def calculate_cost(
    model: ModelConfig,
    input_tokens: int,
    output_tokens: int,
    *,
    via_openrouter: bool = False,
) -> float:
    """Estimated USD cost of one call.

    Above a tiered threshold, input tokens past the threshold and ALL
    output tokens are billed at the higher rate.
    """
    tiers = model.tiered_pricing
    if tiers is not None and input_tokens > tiers.threshold:
        input_cost = (
            tiers.threshold * model.input_cost_per_million
            + (input_tokens - tiers.threshold) * tiers.input_cost_above
        ) / _PER_MILLION
        output_cost = output_tokens * tiers.output_cost_above / _PER_MILLION
    else:
        input_cost = input_tokens * model.input_cost_per_million / _PER_MILLION
        output_cost = (
            output_tokens * model.output_cost_per_million / _PER_MILLION
        )

    cost = input_cost + output_cost
    if via_openrouter or model.provider is ProviderId.OPENROUTER:
        return cost * OPENROUTER_FEE_MULTIPLIER
    return cost


def format_cost(cost: float) -> str:
    if cost < 0.01:
        return f"${cost:.4f}"
    if cost < 1:
        return f"${cost:.3f}"
    return f"${cost:.2f}"


def format_token_count(tokens: int) -> str:
    """Compact token count: ``950``, ``4.2k``, ``42k``, ``1.2M``."""
    if tokens >= 1_000_000:
        return f"{tokens / 1_000_000:.1f}M"
    if tokens >= 10_000:
        return f"{tokens / 1000:.0f}k"
    if tokens >= 1000:
        return f"{tokens / 1000:.1f}k"
    return str(tokens)


# ── Context window ───────────────────────────────────────


def context_usage_percent(
    model: ModelConfig, used_tokens: int, *, output: bool = False
) -> float:
    limit = (
        model.output_context_limit if output else model.input_context_limit
    )
    return min(100.0, used_tokens / limit * 100)


def context_status(usage_percent: float) -> ContextStatus:
    if usage_percent >= CONTEXT_CRITICAL_PERCENT:
        return ContextStatus.CRITICAL
    if usage_percent >= CONTEXT_WARNING_PERCENT:
        return ContextStatus.WARNING
    return ContextStatus.NORMAL


@dataclass(frozen=True)
class ContextReport:
    """Prompt size against a model's input window."""

    tokens: int
    percent: float
    status: ContextStatus
    estimated_cost: float = 0.0


def context_report(model: ModelConfig, tokens: int) -> ContextReport:
    percent = context_usage_percent(model, tokens)
    return ContextReport(
        tokens=tokens,
        percent=round(percent, 1),
        status=context_status(percent),
        estimated_cost=calculate_cost(model, tokens, 0),
    )
