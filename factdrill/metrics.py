"""Simple in-process metrics registry for selector instrumentation."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field


@dataclass
class MetricsRegistry:
    """Holds counters and samples exposed by the drill engine."""

    selections: int = 0
    selection_fallbacks: Counter = field(default_factory=Counter)
    selected_weights: Counter = field(default_factory=Counter)
    attempt_outcomes: Counter = field(default_factory=Counter)
    weight_clamps: int = 0

    def record_selection(self, weight: float) -> None:
        self.selections += 1
        self.selected_weights[weight] += 1

    def record_fallback(self, kind: str) -> None:
        """Track when recency exclusion left a full (``full_pool``) or thin (``small_pool``) pool."""

        self.selection_fallbacks[kind] += 1

    def record_attempt(self, outcome: str, clamped: bool) -> None:
        self.attempt_outcomes[outcome] += 1
        if clamped:
            self.weight_clamps += 1

    @property
    def fallback_rate(self) -> float:
        if self.selections == 0:
            return 0.0
        return sum(self.selection_fallbacks.values()) / self.selections


METRICS = MetricsRegistry()

__all__ = ["METRICS", "MetricsRegistry"]
