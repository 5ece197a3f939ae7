"""Running token and cost totals for the active project."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass
class TokenUsage:
    """Accumulates usage across generations.

    Totals only grow; :meth:`reset` is for switching projects.
    """

    input_tokens: int = 0
    output_tokens: int = 0
    grounding_requests: int = 0
    estimated_cost: float = 0.0

    def add(
        self,
        input_tokens: int = 0,
        output_tokens: int = 0,
        grounding_requests: int = 0,
        cost: float = 0.0,
    ) -> None:
        if min(input_tokens, output_tokens, grounding_requests) < 0 or cost < 0:
            raise ValueError("usage increments must not be negative")
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens
        self.grounding_requests += grounding_requests
        self.estimated_cost += cost

    def reset(self) -> None:
        self.input_tokens = 0
        self.output_tokens = 0
        self.grounding_requests = 0
        self.estimated_cost = 0.0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "total_tokens": self.total_tokens}
