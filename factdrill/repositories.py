"""Repository interface for per-learner problem state."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Iterable, Tuple

from .domain import Fact, ProblemState, ProblemVariant

StateKey = Tuple[Fact, ProblemVariant]


class StoreUnavailable(RuntimeError):
    """Raised when the backing store cannot serve a request."""


class ProblemStateRepository(ABC):
    """Maintain weight and last-seen state per learner, fact and variant.

    Records are keyed by ``(user_id, smaller, larger, problem_type,
    missing_operand_position)``. An absent position is its own key, distinct
    from ``first`` and ``second``.
    """

    @abstractmethod
    async def get(self, user_id: int, fact: Fact, variant: ProblemVariant) -> ProblemState:
        """Return the stored state, or a default state when none exists."""

    @abstractmethod
    async def put(
        self, user_id: int, fact: Fact, variant: ProblemVariant, state: ProblemState
    ) -> None:
        """Insert or overwrite the state for the key."""

    async def get_many(
        self, user_id: int, keys: Iterable[StateKey]
    ) -> Dict[StateKey, ProblemState]:
        """Return states for several keys. Stores override this to batch I/O."""

        return {(fact, variant): await self.get(user_id, fact, variant) for fact, variant in keys}


__all__ = ["ProblemStateRepository", "StateKey", "StoreUnavailable"]
