"""Concrete repository implementations backed by memory and SQLite."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

import aiosqlite

from .domain import Fact, ProblemState, ProblemVariant, variant_from_fields
from .repositories import ProblemStateRepository, StateKey, StoreUnavailable

logger = logging.getLogger(__name__)


class InMemoryProblemStateRepository(ProblemStateRepository):
    """Keeps problem state in a dict; for tests and ephemeral use."""

    def __init__(self) -> None:
        self._states: Dict[Tuple[int, Fact, ProblemVariant], ProblemState] = {}

    async def get(self, user_id: int, fact: Fact, variant: ProblemVariant) -> ProblemState:
        state = self._states.get((user_id, fact, variant))
        if state is None:
            return ProblemState()
        return replace(state)

    async def put(
        self, user_id: int, fact: Fact, variant: ProblemVariant, state: ProblemState
    ) -> None:
        self._states[(user_id, fact, variant)] = replace(state)

    def __len__(self) -> int:
        return len(self._states)


class SqliteProblemStateRepository(ProblemStateRepository):
    """Stores problem state in a SQLite database through aiosqlite."""

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn
        self._lock = asyncio.Lock()

    @classmethod
    async def connect(cls, db_path: Union[str, Path]) -> "SqliteProblemStateRepository":
        try:
            conn = await aiosqlite.connect(str(db_path))
        except aiosqlite.Error as exc:
            raise StoreUnavailable(f"Cannot open problem state database {db_path}") from exc
        conn.row_factory = aiosqlite.Row
        repository = cls(conn)
        try:
            await repository._initialise_schema()
        except StoreUnavailable:
            await conn.close()
            raise
        return repository

    async def close(self) -> None:
        async with self._lock:
            await self._conn.close()

    async def __aenter__(self) -> "SqliteProblemStateRepository":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _initialise_schema(self) -> None:
        async with self._lock:
            try:
                await self._conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS problem_states (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        user_id INTEGER NOT NULL,
                        factor1 INTEGER NOT NULL,
                        factor2 INTEGER NOT NULL,
                        weight REAL NOT NULL DEFAULT 10,
                        last_seen INTEGER NOT NULL DEFAULT 0,
                        problem_type TEXT NOT NULL DEFAULT 'multiplication',
                        missing_operand_position TEXT NULL,
                        CHECK (factor1 <= factor2),
                        CHECK (
                            (problem_type = 'multiplication'
                             AND missing_operand_position IS NULL)
                            OR (problem_type = 'missing_factor'
                                AND missing_operand_position IN ('first', 'second'))
                        )
                    );

                    CREATE INDEX IF NOT EXISTS idx_problem_states_user_type
                        ON problem_states (user_id, problem_type);

                    -- two NULL positions never compare equal, so absent
                    -- positions get their own index
                    CREATE UNIQUE INDEX IF NOT EXISTS uq_problem_states_with_position
                        ON problem_states (
                            user_id, factor1, factor2, problem_type, missing_operand_position
                        )
                        WHERE missing_operand_position IS NOT NULL;

                    CREATE UNIQUE INDEX IF NOT EXISTS uq_problem_states_without_position
                        ON problem_states (user_id, factor1, factor2, problem_type)
                        WHERE missing_operand_position IS NULL;
                    """
                )
                await self._conn.commit()
            except aiosqlite.Error as exc:
                raise StoreUnavailable("Failed to initialise problem_states schema") from exc

    @staticmethod
    def _key_clause(variant: ProblemVariant) -> Tuple[str, List[object]]:
        # NULL never equals NULL in SQL; absent positions need IS NULL
        position = variant.missing_operand_position
        if position is None:
            return "problem_type = ? AND missing_operand_position IS NULL", [variant.problem_type]
        return (
            "problem_type = ? AND missing_operand_position = ?",
            [variant.problem_type, position],
        )

    async def get(self, user_id: int, fact: Fact, variant: ProblemVariant) -> ProblemState:
        clause, params = self._key_clause(variant)
        query = (
            "SELECT weight, last_seen FROM problem_states "
            f"WHERE user_id = ? AND factor1 = ? AND factor2 = ? AND {clause}"
        )
        try:
            async with self._lock:
                cursor = await self._conn.execute(
                    query, (user_id, fact.smaller, fact.larger, *params)
                )
                row = await cursor.fetchone()
                await cursor.close()
        except aiosqlite.Error as exc:
            logger.warning("Problem state read failed for user %s, %s: %s", user_id, fact, exc)
            raise StoreUnavailable(f"Failed to read state for {fact} of user {user_id}") from exc
        if not row:
            return ProblemState()
        return ProblemState(weight=float(row["weight"]), last_seen=int(row["last_seen"]))

    async def put(
        self, user_id: int, fact: Fact, variant: ProblemVariant, state: ProblemState
    ) -> None:
        clause, params = self._key_clause(variant)
        try:
            async with self._lock:
                cursor = await self._conn.execute(
                    f"""
                    UPDATE problem_states
                       SET weight = ?, last_seen = ?
                     WHERE user_id = ? AND factor1 = ? AND factor2 = ? AND {clause}
                    """,
                    (state.weight, state.last_seen, user_id, fact.smaller, fact.larger, *params),
                )
                if cursor.rowcount == 0:
                    await self._conn.execute(
                        """
                        INSERT INTO problem_states (
                            user_id, factor1, factor2, weight, last_seen,
                            problem_type, missing_operand_position
                        )
                        VALUES (?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            user_id,
                            fact.smaller,
                            fact.larger,
                            state.weight,
                            state.last_seen,
                            variant.problem_type,
                            variant.missing_operand_position,
                        ),
                    )
                await cursor.close()
                await self._conn.commit()
        except aiosqlite.Error as exc:
            logger.warning("Problem state write failed for user %s, %s: %s", user_id, fact, exc)
            raise StoreUnavailable(f"Failed to write state for {fact} of user {user_id}") from exc

    async def get_many(
        self, user_id: int, keys: Iterable[StateKey]
    ) -> Dict[StateKey, ProblemState]:
        wanted = list(keys)
        if not wanted:
            return {}
        problem_types = sorted({variant.problem_type for _, variant in wanted})
        placeholders = ", ".join("?" for _ in problem_types)
        try:
            async with self._lock:
                cursor = await self._conn.execute(
                    f"""
                    SELECT factor1, factor2, problem_type, missing_operand_position,
                           weight, last_seen
                      FROM problem_states
                     WHERE user_id = ? AND problem_type IN ({placeholders})
                    """,
                    (user_id, *problem_types),
                )
                rows = await cursor.fetchall()
                await cursor.close()
        except aiosqlite.Error as exc:
            logger.warning("Batched problem state read failed for user %s: %s", user_id, exc)
            raise StoreUnavailable(f"Failed to read states for user {user_id}") from exc

        stored: Dict[StateKey, ProblemState] = {}
        for row in rows:
            key = (
                Fact(row["factor1"], row["factor2"]),
                variant_from_fields(row["problem_type"], row["missing_operand_position"]),
            )
            stored[key] = ProblemState(weight=float(row["weight"]), last_seen=int(row["last_seen"]))
        return {key: stored.get(key) or ProblemState() for key in wanted}

    async def count(self, user_id: Optional[int] = None) -> int:
        """Number of stored records, optionally for one user."""

        query = "SELECT COUNT(*) AS n FROM problem_states"
        params: Tuple[object, ...] = ()
        if user_id is not None:
            query += " WHERE user_id = ?"
            params = (user_id,)
        try:
            async with self._lock:
                cursor = await self._conn.execute(query, params)
                row = await cursor.fetchone()
                await cursor.close()
        except aiosqlite.Error as exc:
            raise StoreUnavailable("Failed to count problem states") from exc
        return int(row["n"])


__all__ = ["InMemoryProblemStateRepository", "SqliteProblemStateRepository"]
