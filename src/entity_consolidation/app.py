"""FastAPI application for the consolidation engine."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from entity_consolidation import __version__
from entity_consolidation.db import async_session_factory, init_db
from entity_consolidation.detection.clustering import MAX_THRESHOLD, MIN_THRESHOLD
from entity_consolidation.errors import (
    ConcurrencyError,
    ConsolidationError,
    DetectionTimeoutError,
    NotFoundError,
    PartialDependencyFailure,
    StaleGroupError,
    ValidationError,
)
from entity_consolidation.schemas import (
    DuplicateGroupOut,
    EntityOut,
    MergeOperationOut,
    MergeRequest,
    ResolveOut,
)
from entity_consolidation.services.engine import ConsolidationEngine

logger = logging.getLogger(__name__)

STATUS_CODES: dict[type[ConsolidationError], int] = {
    ValidationError: 422,
    StaleGroupError: 409,
    ConcurrencyError: 409,
    PartialDependencyFailure: 500,
    NotFoundError: 404,
    DetectionTimeoutError: 504,
}

router = APIRouter()


def get_engine(request: Request) -> ConsolidationEngine:
    return request.app.state.engine


EngineDep = Annotated[ConsolidationEngine, Depends(get_engine)]


@router.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@router.get("/duplicates/exact", response_model=list[DuplicateGroupOut])
async def exact_duplicates(engine: EngineDep) -> list[DuplicateGroupOut]:
    """Active entities sharing a normalized tax identifier."""
    groups = await engine.find_exact_groups()
    return [DuplicateGroupOut.model_validate(group) for group in groups]


@router.get("/duplicates/fuzzy", response_model=list[DuplicateGroupOut])
async def fuzzy_duplicates(
    engine: EngineDep,
    threshold: Annotated[int | None, Query(ge=MIN_THRESHOLD, le=MAX_THRESHOLD)] = None,
) -> list[DuplicateGroupOut]:
    """Active entities with similar names, clustered at `threshold`."""
    groups = await engine.find_fuzzy_groups(threshold)
    return [DuplicateGroupOut.model_validate(group) for group in groups]


@router.post("/merges", response_model=EntityOut)
async def create_merge(body: MergeRequest, engine: EngineDep) -> EntityOut:
    """Merge a group into its survivor. Returns the consolidated survivor."""
    survivor = await engine.merge(
        body.group_members,
        body.survivor_id,
        body.field_overrides,
        actor=body.actor,
        reason=body.reason,
    )
    return EntityOut.model_validate(survivor)


@router.get("/entities/{entity_id}/resolve", response_model=ResolveOut)
async def resolve_entity(entity_id: int, engine: EngineDep) -> ResolveOut:
    current_id = await engine.resolve(entity_id)
    return ResolveOut(requested_id=entity_id, entity_id=current_id, redirected=current_id != entity_id)


@router.get("/entities/{entity_id}/merges", response_model=list[MergeOperationOut])
async def entity_merges(
    entity_id: int,
    engine: EngineDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[MergeOperationOut]:
    """Merge audit records the entity took part in, newest first."""
    operations = await engine.merge_history(entity_id, limit=limit)
    return [MergeOperationOut.model_validate(operation) for operation in operations]


def register_error_handlers(application: FastAPI) -> None:
    """Map ConsolidationError subclasses to HTTP responses."""

    @application.exception_handler(ConsolidationError)
    async def consolidation_error_handler(
        request: Request, exc: ConsolidationError
    ) -> JSONResponse:
        status_code = next(
            (code for error_type, code in STATUS_CODES.items() if isinstance(exc, error_type)),
            500,
        )
        if status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(
    consolidation_engine: ConsolidationEngine | None = None,
    *,
    initialize_db: bool = True,
) -> FastAPI:
    """Build the API around an engine (one on the default database if omitted)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan handler."""
        if initialize_db:
            await init_db()
        yield

    application = FastAPI(
        title="Entity Consolidation",
        description="Duplicate detection and atomic merge for a customer registry",
        version=__version__,
        lifespan=lifespan,
    )
    application.state.engine = consolidation_engine or ConsolidationEngine(async_session_factory)
    register_error_handlers(application)
    application.include_router(router)
    return application


app = create_app()
