"""
TCGCollectr — HTTP API

Thin FastAPI routes over the sets service:

    GET /api/sets            paginated, filterable listing (seeds on first use)
    GET /api/sets/{set_id}   single set with sync metadata
    GET /health              database connectivity probe

Errors use one envelope: {"error": {"code", "message", "details"}}.
A failed seed is always a 500, never an empty 200.
"""

from __future__ import annotations

import contextlib
import re
from typing import Any, AsyncIterator

import structlog
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from tcgcollectr import __version__
from tcgcollectr.config import settings
from tcgcollectr.db import Database, create_database
from tcgcollectr.errors import CatalogError
from tcgcollectr.services.seeder import SetSeeder
from tcgcollectr.services.sets import SetsQuery, SetsService

logger = structlog.get_logger(__name__)

SET_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

router = APIRouter()


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message, "details": details or {}}},
        headers={"Cache-Control": "no-store"},
    )


def _field_errors(exc: ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        field = ".".join(str(part) for part in err["loc"]) or "query"
        errors.setdefault(field, []).append(err["msg"])
    return errors


def _service(request: Request) -> SetsService:
    return request.app.state.sets_service


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/api/sets")
async def list_sets(request: Request) -> JSONResponse:
    try:
        params = SetsQuery.model_validate(dict(request.query_params))
    except ValidationError as e:
        return error_response("VALIDATION_ERROR", "Invalid query parameters", 400, _field_errors(e))

    try:
        result = await _service(request).list_sets(params)
    except CatalogError as e:
        logger.error("api_list_sets_failed", code=e.code, error=e.message, error_type=type(e).__name__)
        return error_response(e.code, e.message, 500, e.details)

    return JSONResponse(
        content=result.model_dump(mode="json", by_alias=True),
        headers={"Cache-Control": settings.SETS_LIST_CACHE_CONTROL},
    )


@router.get("/api/sets/{set_id}")
async def get_set(set_id: str, request: Request) -> JSONResponse:
    if not SET_ID_PATTERN.match(set_id):
        return error_response(
            "VALIDATION_ERROR",
            "Invalid setId format. Must contain only letters, numbers, dots, underscores, or dashes.",
            400,
            {"set_id": set_id},
        )

    try:
        detail = await _service(request).get_set(set_id)
    except CatalogError as e:
        logger.error("api_get_set_failed", set_id=set_id, code=e.code, error=e.message)
        return error_response(e.code, e.message, 500, e.details)

    if detail is None:
        return error_response("NOT_FOUND", "Set not found", 404)

    return JSONResponse(
        content=detail.model_dump(mode="json", by_alias=True),
        headers={"Cache-Control": settings.SET_DETAIL_CACHE_CONTROL},
    )


@router.get("/health")
async def health(request: Request) -> JSONResponse:
    database: Database = request.app.state.database
    try:
        await database.health_check()
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e), error_type=type(e).__name__)
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return JSONResponse(content={"status": "ok", "version": __version__})


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def _wire(app: FastAPI, database: Database) -> None:
    seeder = SetSeeder(database.read_sessions, database.service_sessions)
    app.state.database = database
    app.state.seeder = seeder
    app.state.sets_service = SetsService(database.read_sessions, seeder)


def create_app(database: Database | None = None) -> FastAPI:
    """
    Build the API application.

    When `database` is given the caller owns its lifetime. Otherwise engines
    are created on startup and disposed on shutdown.
    """

    @contextlib.asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned: Database | None = None
        if database is None:
            owned = create_database()
            _wire(app, owned)
        logger.info("api_startup_complete", tcgdex_base_url=settings.TCGDEX_BASE_URL)
        try:
            yield
        finally:
            if owned is not None:
                await owned.dispose()
            logger.info("api_shutdown_complete")

    app = FastAPI(title="TCGCollectr Catalog", version=__version__, lifespan=lifespan)
    app.include_router(router)
    if database is not None:
        _wire(app, database)
    return app
