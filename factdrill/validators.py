"""Validation of selection configuration prior to any store access."""
from __future__ import annotations

from .models import SelectionConfig


class InvalidConfiguration(ValueError):
    """Raised when a selection config cannot produce a candidate pool."""


def validate_config(config: SelectionConfig) -> None:
    if config.min_factor > config.max_factor:
        raise InvalidConfiguration(
            f"min_factor ({config.min_factor}) must not exceed max_factor ({config.max_factor})"
        )
    if config.recent_problem_count < 0:
        raise InvalidConfiguration(
            f"recent_problem_count must be non-negative, got {config.recent_problem_count}"
        )
    if config.target_response_time < 0:
        raise InvalidConfiguration(
            f"target_response_time must be non-negative, got {config.target_response_time}"
        )


__all__ = ["InvalidConfiguration", "validate_config"]
