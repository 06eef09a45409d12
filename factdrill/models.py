"""Pydantic models for the fact drill engine and its HTTP adapter."""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .domain import MissingOperandPosition, ProblemType, ProblemVariant, variant_from_fields


class SelectionConfig(BaseModel):
    """Per-call tuning for selection and weight updates."""

    model_config = ConfigDict(frozen=True)

    min_factor: int = 2
    max_factor: int = 10
    problem_type: ProblemType = "multiplication"
    recent_problem_count: int = 20
    target_response_time: int = 7000  # ms
    weight_increase_wrong: float = 5
    weight_decrease_fast: float = 3
    weight_decrease_slow: float = 1

    @model_validator(mode="before")
    @classmethod
    def apply_problem_type_defaults(cls, data: Any) -> Any:
        # fields left unset take the defaults of the requested problem type
        if isinstance(data, dict) and data.get("problem_type") == "missing_factor":
            return {**MISSING_FACTOR_DEFAULTS, **data}
        return data

    @classmethod
    def for_problem_type(cls, problem_type: ProblemType) -> "SelectionConfig":
        if problem_type == "missing_factor":
            return MISSING_FACTOR_CONFIG
        return DEFAULT_CONFIG

    def with_problem_type(self, problem_type: ProblemType) -> "SelectionConfig":
        """Rebuild for ``problem_type``, keeping only the fields set explicitly.

        Raises ``ValueError`` when this config explicitly names another type.
        """

        overrides = self.model_dump(exclude_unset=True)
        explicit_type = overrides.pop("problem_type", None)
        if explicit_type is None:
            return SelectionConfig(problem_type=problem_type, **overrides)
        if explicit_type != problem_type:
            raise ValueError(
                f"Config problem_type {explicit_type!r} conflicts with requested {problem_type!r}"
            )
        return self


MISSING_FACTOR_DEFAULTS = {"max_factor": 12, "target_response_time": 8000}

DEFAULT_CONFIG = SelectionConfig()
MISSING_FACTOR_CONFIG = SelectionConfig(problem_type="missing_factor")


class _VariantFields(BaseModel):
    problem_type: ProblemType = "multiplication"
    missing_operand_position: Optional[MissingOperandPosition] = None

    @model_validator(mode="after")
    def check_variant(self) -> "_VariantFields":
        # raises ValueError for inconsistent type/position combinations
        variant_from_fields(self.problem_type, self.missing_operand_position)
        return self

    @property
    def variant(self) -> ProblemVariant:
        return variant_from_fields(self.problem_type, self.missing_operand_position)


class Problem(_VariantFields):
    """A drill fact as shown to the learner.

    For missing factor problems ``missing_operand_position`` names the operand
    slot the caller hides; choosing the hidden value is left to the caller.
    """

    factor1: int
    factor2: int


class ProblemHistoryEntry(_VariantFields):
    """One past attempt supplied by the caller for recency exclusion."""

    factor1: int
    factor2: int
    correct: bool
    time_to_answer: int
    timestamp: int


class ProblemStateResponse(BaseModel):
    weight: float
    last_seen: int


class MasteryCell(BaseModel):
    factor1: int
    factor2: int
    weight: float
    problem_type: ProblemType = "multiplication"
    missing_operand_position: Optional[MissingOperandPosition] = None


class MasteryGridResponse(BaseModel):
    cells: List[MasteryCell]


class NextProblemRequest(BaseModel):
    """Input body for /v1/problems/next."""

    user_id: int
    history: List[ProblemHistoryEntry] = Field(default_factory=list)
    config: Optional[SelectionConfig] = None
    problem_type: ProblemType = "multiplication"


class AttemptRequest(BaseModel):
    """Input body for /v1/problems/attempts."""

    user_id: int
    problem: Problem
    correct: bool
    response_time_ms: int = Field(ge=0)
    config: Optional[SelectionConfig] = None


class ProblemStateRequest(BaseModel):
    user_id: int
    problem: Problem


__all__ = [
    "DEFAULT_CONFIG",
    "MISSING_FACTOR_CONFIG",
    "AttemptRequest",
    "MasteryCell",
    "MasteryGridResponse",
    "NextProblemRequest",
    "Problem",
    "ProblemHistoryEntry",
    "ProblemStateRequest",
    "ProblemStateResponse",
    "SelectionConfig",
]
