"""
api/main.py -- FastAPI application entry point for TokenWarden.

Exposes the token lifecycle engine (auth/) over HTTP. The engine itself does
no logging and no formatting; this module owns both.

Run with:      uvicorn asgi:app --reload
               python main.py serve

Middleware stack (outermost to innermost):
  1. CORSMiddleware        -- adds CORS headers for CORS_ORIGINS
  2. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan builds the engine, stores, hasher, signer and AuthService from
get_settings() on startup, and disposes the connection pool on shutdown.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.errors import (
    AuthError,
    Conflict,
    DeadlineExceeded,
    HashingError,
    InvalidCredentials,
    InvalidInput,
    PersistenceError,
    Unauthorized,
)
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.store import PrincipalStore, RefreshTokenStore, create_auth_engine
from auth.tokens import TokenSigner
from core.config import Settings, get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("tokenwarden.api")

# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


def build_auth_service(settings: Settings) -> AuthService:
    """Assemble an AuthService from settings.

    Shared by the lifespan and the CLI so both run the same wiring. The
    signing secret is handed to TokenSigner here and nowhere else.
    """
    engine = create_auth_engine(settings.database_url, settings.db_timeout_seconds)
    return AuthService(
        hasher=PasswordHasher(rounds=settings.bcrypt_rounds),
        signer=TokenSigner(
            secret_key=settings.secret_key,
            ttl=timedelta(seconds=settings.access_token_ttl_seconds),
        ),
        principals=PrincipalStore(engine),
        refresh_tokens=RefreshTokenStore(engine, ttl=timedelta(days=settings.refresh_token_ttl_days)),
        min_password_length=settings.min_password_length,
    )


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. Disposing the engine closes every pooled connection.
    """
    logger.info("TokenWarden API starting up")
    settings = get_settings()
    app.state.auth_service = build_auth_service(settings)
    # Per-request deadline handed to AuthService: room for a pool checkout
    # plus the statement itself.
    app.state.request_timeout = settings.db_timeout_seconds * 2
    logger.info("Auth store initialized")

    yield

    app.state.auth_service.principals.engine.dispose()
    logger.info("TokenWarden API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="TokenWarden API",
    description="Password login, short-lived access tokens and rotating refresh tokens.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# Register in the order you want the request to encounter them: CORS -> SlowAPI.
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Only method, path, status, latency and client address are logged --
# never bodies, which carry passwords and tokens.
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
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific first: the lookup walks this list and stops at the first match.
_AUTH_ERROR_STATUS: list[tuple[type[AuthError], int]] = [
    (InvalidInput, 400),
    (InvalidCredentials, 401),
    (Unauthorized, 401),
    (Conflict, 409),
    (HashingError, 500),
    (PersistenceError, 503),
    (DeadlineExceeded, 504),
]


def _status_for(exc: AuthError) -> int:
    for error_type, status in _AUTH_ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return 500


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map core errors to HTTP status codes.

    Only InvalidInput echoes its message; every other class answers with its
    fixed default message. Server-side failures are logged with traceback,
    client-side ones as a single INFO line carrying the error code.
    """
    status = _status_for(exc)
    if status >= 500:
        logger.error("%s on %s %s", exc.code, request.method, request.url.path, exc_info=exc)
    else:
        logger.info("%s on %s %s", exc.code, request.method, request.url.path)

    message = exc.message if isinstance(exc, InvalidInput) else type(exc).default_message
    response = JSONResponse(
        status_code=status,
        content=ErrorResponse(error=ErrorDetail(code=exc.code, message=message)).model_dump(),
    )
    response.headers["Cache-Control"] = "no-store"
    if status == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded."""
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when the request body fails validation.

    Only field locations and messages are echoed; pydantic's "input" entries
    would repeat the submitted password back to the client.
    """
    fields = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=fields,
            )
        ).model_dump(),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    When detail is already a structured dict, use it directly as the error
    field rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=exc.headers,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error=ErrorDetail(
                code="internal_error",
                message="An unexpected error occurred.",
            )
        ).model_dump(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable
# regardless of router registration state. No rate limit applied.
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"], response_model=HealthResponse)
def health(request: Request) -> JSONResponse:
    """Return liveness plus a database ping. 503 when the database is down."""
    service: AuthService = request.app.state.auth_service
    if service.principals.ping():
        return JSONResponse(status_code=200, content=HealthResponse(version=VERSION).model_dump())
    logger.warning("Health check: database unreachable")
    return JSONResponse(
        status_code=503,
        content=HealthResponse(status="degraded", db="down", version=VERSION).model_dump(),
    )
