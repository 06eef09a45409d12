"""FastAPI application wiring for the fact drill engine."""

from __future__ import annotations

import logging
import os
import random
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException

from .domain import ProblemType
from .models import (
    AttemptRequest,
    MasteryGridResponse,
    NextProblemRequest,
    Problem,
    ProblemStateRequest,
    ProblemStateResponse,
    SelectionConfig,
)
from .repositories import StoreUnavailable
from .services import ProblemSelector
from .storage import InMemoryProblemStateRepository, SqliteProblemStateRepository
from .validators import InvalidConfiguration

logger = logging.getLogger(__name__)

app = FastAPI(title="factdrill", version="0.1.0")


def get_selector() -> ProblemSelector:
    return app.state.selector


@app.on_event("startup")
async def startup() -> None:
    db_path = os.getenv("FACTDRILL_DB_PATH")
    seed = os.getenv("FACTDRILL_RANDOM_SEED")

    if db_path:
        repository = await SqliteProblemStateRepository.connect(db_path)
        logger.info("Problem states persisted to %s", db_path)
    else:
        repository = InMemoryProblemStateRepository()
        logger.info("FACTDRILL_DB_PATH not set, problem states kept in memory")

    rng = random.Random(int(seed)) if seed else random.Random()
    app.state.repository = repository
    app.state.selector = ProblemSelector(repository, rng=rng)


@app.on_event("shutdown")
async def shutdown() -> None:
    repository = getattr(app.state, "repository", None)
    if isinstance(repository, SqliteProblemStateRepository):
        await repository.close()


def _config_for(
    config: Optional[SelectionConfig], problem_type: ProblemType, problem_type_given: bool = True
) -> SelectionConfig:
    """Preset for ``problem_type`` overlaid with the fields the client set."""

    if config is None:
        return SelectionConfig.for_problem_type(problem_type)
    if not problem_type_given:
        return config
    try:
        return config.with_problem_type(problem_type)
    except ValueError as exc:
        raise InvalidConfiguration(str(exc)) from exc


@app.post("/v1/problems/next", response_model=Problem)
async def next_problem(
    request: NextProblemRequest, selector: ProblemSelector = Depends(get_selector)
) -> Problem:
    try:
        config = _config_for(
            request.config,
            request.problem_type,
            "problem_type" in request.model_fields_set,
        )
        return await selector.select_next(request.user_id, request.history, config)
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/v1/problems/attempts", response_model=ProblemStateResponse)
async def record_attempt(
    request: AttemptRequest, selector: ProblemSelector = Depends(get_selector)
) -> ProblemStateResponse:
    try:
        config = _config_for(request.config, request.problem.problem_type)
        state = await selector.record_attempt(
            request.user_id,
            request.problem,
            request.correct,
            request.response_time_ms,
            config,
        )
    except InvalidConfiguration as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return ProblemStateResponse(**state.to_dict())


@app.post("/v1/problems/state", response_model=ProblemStateResponse)
async def problem_state(
    request: ProblemStateRequest, selector: ProblemSelector = Depends(get_selector)
) -> ProblemStateResponse:
    try:
        state = await selector.get_state(request.user_id, request.problem)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return ProblemStateResponse(**state.to_dict())


@app.get("/v1/users/{user_id}/mastery", response_model=MasteryGridResponse)
async def mastery(
    user_id: int,
    problem_type: ProblemType = "multiplication",
    selector: ProblemSelector = Depends(get_selector),
) -> MasteryGridResponse:
    config = SelectionConfig.for_problem_type(problem_type)
    try:
        cells = await selector.mastery_grid(user_id, config)
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return MasteryGridResponse(cells=cells)


__all__ = ["app"]
