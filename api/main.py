"""
api/main.py -- FastAPI application entry point for Twinsight Auth.

Run with:  python main.py            (loads config, then serves on 0.0.0.0:8080)
           uvicorn api.main:app      (loads config inside the lifespan)

Middleware stack (outermost to innermost):
  1. CORSMiddleware  -- adds CORS headers for allowed browser origins
  2. log_requests    -- one access-log line per request

Lifespan owns the process-wide resources: it loads Settings (unless main.py
already did and stored them on app.state), builds the Database handle, runs
the schema guard, and wires the AuthFacade. A schema failure raises out of
startup, so the server never begins serving against a bad schema.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.facade import build_auth_facade
from auth.schema import SchemaGuard
from core.config import load_settings
from core.database import Database

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("twinsight.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build process-lifetime resources on startup and release them on shutdown.

    Startup order matters:
      1. Settings -- everything else is configured from them.
      2. Database -- the pool every request borrows from.
      3. Schema guard -- must pass before any request is accepted.
      4. AuthFacade -- the object route handlers call.
    """
    settings = getattr(app.state, "settings", None) or load_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info("Twinsight Auth starting up")
    database = Database.from_settings(settings)
    try:
        created = SchemaGuard(database).ensure_schema()
    except Exception:
        database.close()
        logger.critical("Schema check failed; refusing to start")
        raise
    logger.info("Schema %s", "created" if created else "verified")

    app.state.settings = settings
    app.state.database = database
    app.state.auth = build_auth_facade(database, settings)

    yield

    app.state.database.close()
    logger.info("Twinsight Auth shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Twinsight Auth API",
    description="Account registration, login, and session validation.",
    version=API_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
#
# Logs method, path, status, and latency. Never bodies: they carry
# credentials and session ids.
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api/v1", tags=["Auth"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so clients can parse
# transport errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 when required form fields are missing or malformed."""
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=str(exc.errors()),
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for HTTPExceptions raised by route handlers.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected server errors.

    The exception is logged server-side only; the client gets a generic
    message with no detail.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(code="internal_error", message="An unexpected error occurred.")
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py so it is reachable regardless of router state.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return liveness, version, and database reachability."""
    database: Database = request.app.state.database
    db_status = "ok" if database.ping() else "error"
    return HealthResponse(
        status="healthy" if db_status == "ok" else "degraded",
        version=API_VERSION,
        components={"app": "ok", "database": db_status},
    )
