"""
api/main.py -- FastAPI application entry point for Gatekeeper.

Exposes the auth core over HTTP. The core itself has no opinion about wire
formats; this module owns request logging, error-to-status mapping and the
uniform ErrorResponse envelope.

Run with:      uvicorn asgi:app --reload

Requests pass the Host allow-list (ALLOWED_HOSTS) first, then CORS, then
the request logger. Errors of every kind leave as the same ErrorResponse
JSON shape.

Startup builds the engine, the three stores, AuthService and the reset
notifier; shutdown disposes the engine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth import errors
from auth.notifier import LoggingResetNotifier
from auth.service import AuthService
from auth.store import SQLResetTokenStore, SQLSessionStore, SQLUserStore, create_store_engine
from core.config import get_settings

_settings = get_settings()

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=_settings.log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("gatekeeper.api")


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the object graph once and hang it on app.state.

    Startup order matters: the engine (which creates missing tables) comes
    first, the three stores share it, and AuthService receives the stores
    explicitly. Nothing below reads module globals after this point.
    """
    logger.info("Gatekeeper API starting up")
    engine = create_store_engine(_settings.database_url)
    app.state.engine = engine
    app.state.auth_service = AuthService.from_settings(
        _settings,
        SQLUserStore(engine),
        SQLSessionStore(engine),
        SQLResetTokenStore(engine),
    )
    app.state.reset_notifier = LoggingResetNotifier()
    logger.info("Auth initialized (session_ttl_days=%d)", _settings.session_ttl_days)

    yield

    engine.dispose()
    logger.info("Gatekeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Gatekeeper API",
    description="Account registration, password login, session tokens and password reset.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging
#
# Method, path, status, latency, client. Headers are never logged: the
# Authorization header carries a live session token.
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
# ---------------------------------------------------------------------------

# Looked up along the exception's MRO, so subclasses inherit their parent's
# status (DuplicateUsername -> ValidationConflict -> 409).
_STATUS_BY_ERROR: dict[type[errors.AuthError], int] = {
    errors.ValidationConflict: 409,
    errors.PasswordTooLong: 422,
    errors.InvalidCredentials: 401,
    errors.AccountDisabled: 403,
    errors.SessionNotFound: 401,
    errors.SessionExpired: 401,
    errors.InvalidResetToken: 400,
    errors.TokenAlreadyUsed: 400,
    errors.TokenExpired: 400,
    errors.AccountNotFound: 404,
    errors.StoreFailure: 500,
    errors.HashingError: 500,
    errors.EntropyError: 500,
}

_INTERNAL_ERROR = ErrorDetail(code="internal_error", message="An unexpected error occurred.")


def status_for(exc: errors.AuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in _STATUS_BY_ERROR:
            return _STATUS_BY_ERROR[cls]
    return 400


def _error_response(status_code: int, detail: ErrorDetail) -> JSONResponse:
    response = JSONResponse(status_code=status_code, content=ErrorResponse(error=detail).model_dump())
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(errors.AuthError)
async def auth_error_handler(request: Request, exc: errors.AuthError) -> JSONResponse:
    """Map a typed auth failure to its status code.

    Server-class failures (store, hashing, entropy) are logged with their
    cause and answered with a generic message; the chained storage error
    never reaches the client.
    """
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("Auth core failure on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error_response(status_code, _INTERNAL_ERROR)
    return _error_response(status_code, ErrorDetail(code=exc.code, message=exc.message))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = [{"loc": e.get("loc"), "msg": e.get("msg")} for e in exc.errors()]
    return _error_response(
        422,
        ErrorDetail(code="validation_error", message="Request validation failed.", detail=str(problems)),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Dependencies raise HTTPException with a {code, message} dict; pass it
    through as the error field. Plain string details get an http_<status> code."""
    if isinstance(exc.detail, dict):
        return _error_response(exc.status_code, ErrorDetail(**exc.detail))
    return _error_response(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, _INTERNAL_ERROR)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and a database round-trip check."""
    database = "ok"
    try:
        with request.app.state.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check: database unreachable", exc_info=True)
        database = "error"
    return HealthResponse(version=VERSION, components={"app": "ok", "database": database})
