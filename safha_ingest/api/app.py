"""
HTTP Trigger
============

FastAPI application exposing the ingestion run, on-demand extraction and
backfill jobs to schedulers and operators.

CORS echoes the request origin only when it is allowlisted; any other
origin receives the first allowlisted origin, never ``*``.
"""

import json
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from .. import __version__
from ..config.settings import ApiSettings, SafhaSettings, get_settings
from ..database.connection import DatabaseConnection, get_db_manager
from ..processing.backfill import BackfillService
from ..processing.pipeline import IngestionPipeline
from ..utils.exceptions import ConfigurationError, ErrorCode, SafhaError, ValidationError
from ..utils.logging import get_logger_for_component

logger = get_logger_for_component("api")

ALLOWED_METHODS = "GET, POST, OPTIONS"
ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type"
DATABASE_CONFIG_MISSING = "Database configuration missing"

router = APIRouter()


def _allowed_origins(app: FastAPI) -> List[str]:
    settings = app.state.settings
    if settings is None:
        try:
            settings = get_settings()
        except ConfigurationError:
            return ApiSettings().allowed_origins
    return settings.api.allowed_origins


def resolve_cors_origin(origin: Optional[str], allowed: List[str]) -> str:
    """The origin to send back: the allowlist entry matching the caller, else the first entry."""
    if origin:
        normalized = origin.rstrip("/")
        for entry in allowed:
            if entry == normalized:
                return entry
    return allowed[0]


def _runtime(request: Request) -> Tuple[SafhaSettings, DatabaseConnection]:
    """Settings and database for a request.

    Raises:
        ConfigurationError: If settings cannot be loaded or no database is configured
    """
    state = request.app.state
    settings = state.settings or get_settings()

    if state.db is not None:
        return settings, state.db

    if not settings.database.path or not settings.database.path.strip():
        raise ConfigurationError(DATABASE_CONFIG_MISSING, config_key="database.path",
                                 error_code=ErrorCode.CONFIG_MISSING)

    return settings, get_db_manager(settings.database.path, settings.database.pool_size)


async def _read_body(request: Request) -> Dict[str, Any]:
    """Parse an optional JSON object body; anything else counts as empty."""
    raw = await request.body()
    if not raw:
        return {}
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return {}
    return data if isinstance(data, dict) else {}


def _error_response(error: Exception, operation: str) -> JSONResponse:
    if isinstance(error, ConfigurationError):
        logger.error(f"{operation} failed: configuration error: {error}")
        message = DATABASE_CONFIG_MISSING if error.error_code == ErrorCode.CONFIG_MISSING else error.message
        return JSONResponse(status_code=500, content={"error": message})
    if isinstance(error, SafhaError):
        logger.error(f"{operation} failed: {error}", extra={"error": error.to_dict()})
        return JSONResponse(status_code=500, content={"error": error.message})

    logger.error(f"{operation} failed unexpectedly: {error}", exc_info=True)
    return JSONResponse(status_code=500, content={"error": str(error) or "Internal error"})


@router.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok", "version": __version__}


@router.post("/fetch-rss")
async def fetch_rss(request: Request) -> JSONResponse:
    """Run one ingestion pass over due sources."""
    body = await _read_body(request)
    try:
        settings, db = _runtime(request)
        pipeline = IngestionPipeline(db, settings=settings)
        result = await pipeline.run(limit=body.get("limit"))
    except Exception as e:
        return _error_response(e, "fetch-rss")

    return JSONResponse(status_code=200, content=result.to_dict())


@router.post("/fetch-content")
async def fetch_content(request: Request) -> JSONResponse:
    """Extract image, video and full text from a single article URL."""
    body = await _read_body(request)
    url = body.get("url")
    if not url or not isinstance(url, str):
        return JSONResponse(status_code=400, content={"error": "URL is required"})

    try:
        settings, db = _runtime(request)
        service = BackfillService(db, settings=settings)
        extraction = await service.fetch_content(url)
    except ValidationError as e:
        return JSONResponse(status_code=400, content={"error": e.message})
    except Exception as e:
        return _error_response(e, "fetch-content")

    return JSONResponse(status_code=200, content={"success": True, **extraction.to_dict()})


@router.post("/backfill-content")
async def backfill_content(request: Request) -> JSONResponse:
    body = await _read_body(request)
    try:
        settings, db = _runtime(request)
        report = await BackfillService(db, settings=settings).backfill_content(body.get("limit"))
    except Exception as e:
        return _error_response(e, "backfill-content")

    return JSONResponse(status_code=200, content={"success": True, **report.to_dict()})


@router.post("/backfill-images")
async def backfill_images(request: Request) -> JSONResponse:
    body = await _read_body(request)
    try:
        settings, db = _runtime(request)
        report = await BackfillService(db, settings=settings).backfill_images(body.get("limit"))
    except Exception as e:
        return _error_response(e, "backfill-images")

    return JSONResponse(status_code=200, content={"success": True, **report.to_dict()})


def create_app(
    settings: Optional[SafhaSettings] = None,
    db_connection: Optional[DatabaseConnection] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Settings override; global settings are loaded lazily otherwise
        db_connection: Database override; the global pool is used otherwise
    """
    app = FastAPI(
        title="Safha Ingest API",
        description="Triggers for RSS ingestion, article extraction and backfills",
        version=__version__,
    )
    app.state.settings = settings
    app.state.db = db_connection

    @app.middleware("http")
    async def cors_allowlist(request: Request, call_next):
        allow_origin = resolve_cors_origin(
            request.headers.get("origin"), _allowed_origins(request.app)
        )

        if request.method == "OPTIONS":
            response = Response(status_code=204)
        else:
            response = await call_next(request)

        response.headers["Access-Control-Allow-Origin"] = allow_origin
        response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
        response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
        response.headers["Vary"] = "Origin"
        return response

    app.include_router(router)
    return app


app = create_app()
