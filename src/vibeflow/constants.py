"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON, SQL,
SSE payloads) works unchanged.
"""

from __future__ import annotations

import math
from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class ProviderId(StrEnum):
    """Supported generation backends."""

    GEMINI = "gemini"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    OPENROUTER = "openrouter"


class ArtifactSection(StrEnum):
    """Workflow stages that own a version history."""

    RESEARCH = "research"
    REQUIREMENTS = "requirements"
    TECHNICAL_DESIGN = "technical_design"
    BUILD_PLAN = "build_plan"


class EventKind(StrEnum):
    """Stream event type names (also used as SSE event names)."""

    CHUNK = "chunk"
    STATUS = "status"
    ERROR = "error"
    DONE = "done"


class GenerationState(StrEnum):
    """Coordinator lifecycle state for a single generation."""

    IDLE = "idle"
    GENERATING = "generating"
    COMMITTED = "committed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class TaskStatus(StrEnum):
    """Normalized status of a long-running remote task.

    Providers spell these differently (``SUCCEEDED`` vs
    ``completed``); :meth:`parse` folds them into one vocabulary.
    """

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    UNSPECIFIED = "unspecified"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @classmethod
    def parse(cls, raw: str | None) -> TaskStatus:
        if not raw:
            return cls.UNSPECIFIED
        return _TASK_STATUS_ALIASES.get(
            raw.strip().lower(), cls.UNSPECIFIED
        )

    @property
    def is_terminal(self) -> bool:
        return self in (
            TaskStatus.COMPLETED,
            TaskStatus.FAILED,
            TaskStatus.CANCELLED,
        )


_TASK_STATUS_ALIASES: dict[str, TaskStatus] = {
    "queued": TaskStatus.QUEUED,
    "pending": TaskStatus.QUEUED,
    "in_progress": TaskStatus.IN_PROGRESS,
    "processing": TaskStatus.IN_PROGRESS,
    "running": TaskStatus.IN_PROGRESS,
    "state_unspecified": TaskStatus.UNSPECIFIED,
    "completed": TaskStatus.COMPLETED,
    "succeeded": TaskStatus.COMPLETED,
    "failed": TaskStatus.FAILED,
    "incomplete": TaskStatus.FAILED,
    "cancelled": TaskStatus.CANCELLED,
    "canceled": TaskStatus.CANCELLED,
}


class SafetyPreset(StrEnum):
    """Content-safety threshold presets (Gemini only)."""

    DEFAULT = "default"
    RELAXED = "relaxed"
    BALANCED = "balanced"
    STRICT = "strict"


class StreamFraming(StrEnum):
    """Wire framing of a streamed response body."""

    SSE = "sse"
    NDJSON = "ndjson"


class ContextStatus(StrEnum):
    """How close a prompt is to the model's context window."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


SECTION_TITLES: dict[str, str] = {
    ArtifactSection.RESEARCH: "Deep Research",
    ArtifactSection.REQUIREMENTS: "Product Requirements",
    ArtifactSection.TECHNICAL_DESIGN: "Technical Design",
    ArtifactSection.BUILD_PLAN: "Build Plan",
}

# ── Retry ────────────────────────────────────────────────

RETRY_MAX_ATTEMPTS = 3
RETRY_BASE_DELAY_SECONDS = 1.0
RETRY_MAX_DELAY_SECONDS = 30.0
RETRY_JITTER_RATIO = 0.25

# ── Background tasks ─────────────────────────────────────

GEMINI_POLL_INTERVAL_SECONDS = 10.0
OPENAI_POLL_INTERVAL_SECONDS = 5.0
POLL_MAX_CONSECUTIVE_FAILURES = 5
TASK_MAX_DURATION_SECONDS = 20 * 60

GEMINI_DEEP_RESEARCH_AGENT = "deep-research-pro-preview-12-2025"
OPENAI_DEEP_RESEARCH_MODEL = "o3-deep-research"

# ── Streaming ────────────────────────────────────────────

SSE_DATA_PREFIX = "data:"
SSE_DONE_SENTINEL = "[DONE]"

# ── Tokens and pricing ───────────────────────────────────

CHARS_PER_TOKEN_ESTIMATE = 4
DEFAULT_ANTHROPIC_MAX_TOKENS = 16_384
OPENROUTER_FEE_MULTIPLIER = 1.055
CONTEXT_WARNING_PERCENT = 70
CONTEXT_CRITICAL_PERCENT = 90
MODEL_CACHE_TTL_SECONDS = 3600

# ── Sessions ─────────────────────────────────────────────

SESSION_CACHE_SIZE = 256

# ── Sampling defaults ────────────────────────────────────

DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.95
DEFAULT_TOP_K = 64
DEFAULT_THINKING_BUDGET = 32_768

# ── Errors and IDs ───────────────────────────────────────

ERROR_TRUNCATION_CHARS = 200
SHORT_ERROR_MAX_CHARS = 100
SHORT_ERROR_PREVIEW_CHARS = 80
ID_HEX_LENGTH = 12


def estimate_tokens(text: str) -> int:
    """Rough token estimate: ~4 chars per token, rounded up."""
    return math.ceil(len(text) / CHARS_PER_TOKEN_ESTIMATE)
