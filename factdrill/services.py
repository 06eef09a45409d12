"""Adaptive problem selection and weight updates for arithmetic fact drills."""
from __future__ import annotations

import logging
import random
import time
from typing import Callable, Iterable, List, Optional, Set, Tuple

from .domain import (
    MIN_WEIGHT,
    Fact,
    MissingFactor,
    Multiplication,
    ProblemState,
    ProblemVariant,
    denormalize,
    normalize,
)
from .metrics import METRICS, MetricsRegistry
from .models import MasteryCell, Problem, ProblemHistoryEntry, SelectionConfig
from .repositories import ProblemStateRepository, StateKey
from .validators import validate_config

logger = logging.getLogger(__name__)

MIN_AVAILABLE_THRESHOLD = 3


def _now_ms() -> int:
    return int(time.time() * 1000)


def all_facts(min_factor: int, max_factor: int) -> List[Fact]:
    """Every normalized fact with ``min_factor <= i <= j <= max_factor``."""

    return [
        Fact(i, j)
        for i in range(min_factor, max_factor + 1)
        for j in range(i, max_factor + 1)
    ]


def variants_for(config: SelectionConfig) -> Tuple[ProblemVariant, ...]:
    if config.problem_type == "missing_factor":
        return (MissingFactor("first"), MissingFactor("second"))
    return (Multiplication(),)


def build_candidate_pool(config: SelectionConfig) -> List[StateKey]:
    """All (fact, variant) pairs drilled under ``config``.

    Missing factor drills track each hidden side as its own record, so both
    positions enter the pool for every fact.
    """

    variants = variants_for(config)
    return [
        (fact, variant)
        for fact in all_facts(config.min_factor, config.max_factor)
        for variant in variants
    ]


def recent_exclusions(
    history: Iterable[ProblemHistoryEntry], config: SelectionConfig
) -> Set[StateKey]:
    same_type = [entry for entry in history if entry.problem_type == config.problem_type]
    same_type.sort(key=lambda entry: entry.timestamp, reverse=True)
    return {
        (normalize(entry.factor1, entry.factor2), entry.variant)
        for entry in same_type[: config.recent_problem_count]
    }


def compute_weight_delta(
    correct: bool, response_time_ms: int, config: SelectionConfig
) -> Tuple[float, str]:
    """Step-function weight change and the outcome label it corresponds to."""

    if not correct:
        return config.weight_increase_wrong, "wrong"
    if response_time_ms < config.target_response_time:
        return -config.weight_decrease_fast, "fast"
    return -config.weight_decrease_slow, "slow"


class ProblemSelector:
    """Picks the next fact for a learner and updates mastery after each attempt.

    ``record_attempt`` is a read-modify-write without locking: two concurrent
    attempts on the same user, fact and variant can lose one update. Learners
    answer sequentially, so callers are expected to serialize per user.
    """

    def __init__(
        self,
        repository: ProblemStateRepository,
        rng: Optional[random.Random] = None,
        clock: Callable[[], int] = _now_ms,
        metrics: MetricsRegistry = METRICS,
    ) -> None:
        self._repository = repository
        self._rng = rng or random.Random()
        self._clock = clock
        self._metrics = metrics

    async def select_next(
        self,
        user_id: int,
        history: Iterable[ProblemHistoryEntry],
        config: SelectionConfig,
    ) -> Problem:
        validate_config(config)

        pool = build_candidate_pool(config)
        excluded = recent_exclusions(history, config)
        available = [candidate for candidate in pool if candidate not in excluded]
        logger.debug(
            "User %s: %d candidates, %d excluded as recent, %d available",
            user_id,
            len(pool),
            len(excluded),
            len(available),
        )

        if not available:
            logger.info(
                "User %s: recent history covers every %s fact, using the full pool",
                user_id,
                config.problem_type,
            )
            self._metrics.record_fallback("full_pool")
            available = pool
        elif len(available) < MIN_AVAILABLE_THRESHOLD:
            logger.info("User %s: only %d facts available, proceeding", user_id, len(available))
            self._metrics.record_fallback("small_pool")

        states = await self._repository.get_many(user_id, available)
        highest = max(states[candidate].weight for candidate in available)
        tied = [candidate for candidate in available if states[candidate].weight == highest]
        fact, variant = self._rng.choice(tied)

        factor1, factor2 = denormalize(fact, self._rng)
        self._metrics.record_selection(highest)
        logger.debug(
            "User %s: selected %s (weight %.2f) among %d tied facts",
            user_id,
            variant.describe(fact),
            highest,
            len(tied),
        )
        return Problem(
            factor1=factor1,
            factor2=factor2,
            problem_type=variant.problem_type,
            missing_operand_position=variant.missing_operand_position,
        )

    async def record_attempt(
        self,
        user_id: int,
        problem: Problem,
        correct: bool,
        response_time_ms: int,
        config: Optional[SelectionConfig] = None,
    ) -> ProblemState:
        config = config or SelectionConfig.for_problem_type(problem.problem_type)
        validate_config(config)

        fact = normalize(problem.factor1, problem.factor2)
        variant = problem.variant
        state = await self._repository.get(user_id, fact, variant)

        delta, outcome = compute_weight_delta(correct, response_time_ms, config)
        raw_weight = state.weight + delta
        new_weight = max(MIN_WEIGHT, raw_weight)
        clamped = raw_weight < MIN_WEIGHT

        updated = ProblemState(weight=new_weight, last_seen=self._clock())
        await self._repository.put(user_id, fact, variant, updated)

        self._metrics.record_attempt(outcome, clamped)
        logger.info(
            "User %s: %s weight %.2f -> %.2f (%s answer in %dms%s)",
            user_id,
            variant.describe(fact),
            state.weight,
            new_weight,
            outcome,
            response_time_ms,
            ", clamped to minimum" if clamped else "",
        )
        return updated

    async def get_state(self, user_id: int, problem: Problem) -> ProblemState:
        fact = normalize(problem.factor1, problem.factor2)
        return await self._repository.get(user_id, fact, problem.variant)

    async def mastery_grid(self, user_id: int, config: SelectionConfig) -> List[MasteryCell]:
        """Weights for every fact in range, listed under both display orders."""

        validate_config(config)
        pool = build_candidate_pool(config)
        states = await self._repository.get_many(user_id, pool)

        cells: List[MasteryCell] = []
        for fact, variant in pool:
            orders = [(fact.smaller, fact.larger)]
            if fact.smaller != fact.larger:
                orders.append((fact.larger, fact.smaller))
            for factor1, factor2 in orders:
                cells.append(
                    MasteryCell(
                        factor1=factor1,
                        factor2=factor2,
                        weight=states[(fact, variant)].weight,
                        problem_type=variant.problem_type,
                        missing_operand_position=variant.missing_operand_position,
                    )
                )
        return cells


__all__ = [
    "MIN_AVAILABLE_THRESHOLD",
    "ProblemSelector",
    "all_facts",
    "build_candidate_pool",
    "compute_weight_delta",
    "recent_exclusions",
    "variants_for",
]
