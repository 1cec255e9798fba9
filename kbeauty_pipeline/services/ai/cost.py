"""Token usage and cost accounting for model calls."""

from dataclasses import dataclass
from typing import Any

from kbeauty_pipeline.services.ai.client import TokenUsage

# USD per token for the default extraction model
INPUT_COST_PER_TOKEN = 3e-6
OUTPUT_COST_PER_TOKEN = 15e-6


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimated USD cost, rounded to four decimals."""
    return round(input_tokens * INPUT_COST_PER_TOKEN + output_tokens * OUTPUT_COST_PER_TOKEN, 4)


@dataclass
class CostTracker:
    """Accumulates token usage across the model calls of one run."""

    calls: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    def record(self, usage: TokenUsage) -> None:
        self.calls += 1
        self.input_tokens += usage.input_tokens
        self.output_tokens += usage.output_tokens

    @property
    def estimated_cost_usd(self) -> float:
        return estimate_cost(self.input_tokens, self.output_tokens)

    @property
    def summary(self) -> dict[str, Any]:
        return {
            "calls": self.calls,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "estimated_cost_usd": self.estimated_cost_usd,
        }
