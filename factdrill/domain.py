"""Domain models shared across services and repositories."""
from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

MissingOperandPosition = Literal["first", "second"]
ProblemType = Literal["multiplication", "missing_factor"]

DEFAULT_WEIGHT = 10.0
MIN_WEIGHT = 1.0


@dataclass(frozen=True, order=True)
class Fact:
    """Unordered operand pair, stored smaller factor first."""

    smaller: int
    larger: int

    def __post_init__(self) -> None:
        if self.smaller > self.larger:
            raise ValueError(f"Fact operands out of order: {self.smaller} > {self.larger}")

    @property
    def product(self) -> int:
        return self.smaller * self.larger

    def __str__(self) -> str:
        return f"{self.smaller}x{self.larger}"


def normalize(a: int, b: int) -> Fact:
    """Canonical key for a commutative pair, so 3x4 and 4x3 share a record."""

    return Fact(min(a, b), max(a, b))


def denormalize(fact: Fact, rng: random.Random) -> Tuple[int, int]:
    """Randomize display order of a fact. The weight key is unaffected."""

    if rng.random() < 0.5:
        return fact.smaller, fact.larger
    return fact.larger, fact.smaller


@dataclass(frozen=True)
class Multiplication:
    @property
    def problem_type(self) -> ProblemType:
        return "multiplication"

    @property
    def missing_operand_position(self) -> Optional[MissingOperandPosition]:
        return None

    def describe(self, fact: Fact) -> str:
        return f"{fact.smaller}×{fact.larger}"


@dataclass(frozen=True)
class MissingFactor:
    """``? × b = p`` (position ``first``) or ``a × ? = p`` (position ``second``)."""

    position: MissingOperandPosition

    def __post_init__(self) -> None:
        if self.position not in ("first", "second"):
            raise ValueError(f"Unknown missing operand position: {self.position!r}")

    @property
    def problem_type(self) -> ProblemType:
        return "missing_factor"

    @property
    def missing_operand_position(self) -> Optional[MissingOperandPosition]:
        return self.position

    def describe(self, fact: Fact) -> str:
        if self.position == "first":
            return f"?×{fact.larger}"
        return f"{fact.smaller}×?"


ProblemVariant = Union[Multiplication, MissingFactor]


def variant_from_fields(
    problem_type: Optional[str], missing_operand_position: Optional[str] = None
) -> ProblemVariant:
    """Resolve the tagged variant from the flat wire fields."""

    if problem_type in (None, "multiplication"):
        if missing_operand_position is not None:
            raise ValueError("Multiplication problems do not have a missing operand")
        return Multiplication()
    if problem_type == "missing_factor":
        if missing_operand_position is None:
            raise ValueError("Missing factor problems require missing_operand_position")
        return MissingFactor(missing_operand_position)
    raise ValueError(f"Unsupported problem type: {problem_type!r}")


@dataclass
class ProblemState:
    """Persisted mastery record for one user, fact and variant."""

    weight: float = DEFAULT_WEIGHT
    last_seen: int = 0

    def to_dict(self) -> dict:
        return {"weight": self.weight, "last_seen": self.last_seen}


__all__ = [
    "DEFAULT_WEIGHT",
    "MIN_WEIGHT",
    "Fact",
    "MissingFactor",
    "MissingOperandPosition",
    "Multiplication",
    "ProblemState",
    "ProblemType",
    "ProblemVariant",
    "denormalize",
    "normalize",
    "variant_from_fields",
]
