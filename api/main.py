"""
api/main.py -- FastAPI application entry point for postkeeper.

Exposes the auth core (register, login, refresh, logout, revocation) over
HTTP. The routes are thin: validation happens in api/models.py, every
business rule lives in auth/service.py and auth/dependencies.py.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  0. log_requests          -- method, path, status, latency for every request
  1. security_headers      -- nosniff, frame denial, no-referrer on every response
  2. limit_body_size       -- 413 for bodies declaring more than 64 KiB
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. CORSMiddleware        -- adds CORS headers for allowed browser origins
  5. SlowAPIMiddleware     -- enforces per-route rate limits from api.limiter

Lifespan handles startup (engine, stores, service, guard, purge task) and
shutdown (cancel purge task, dispose engine) symmetrically.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from auth.components import build_components
from auth.store import create_db_engine, ping
from core.config import get_settings
from core.errors import AuthError, ErrorKind

API_VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("postkeeper.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete revoked and expired refresh-token rows every interval_seconds.

    Runs as a background asyncio task started in lifespan startup. The sweep
    itself is blocking database I/O, so it runs in the threadpool and the
    event loop keeps serving requests. CancelledError from task.cancel()
    during shutdown propagates out of asyncio.sleep and unwinds the coroutine
    cleanly; it is a BaseException, so the except clause below never sees it.
    Any failed sweep is logged and retried on the next tick.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            await run_in_threadpool(app.state.auth_service.purge_tokens)
        except Exception:
            logger.exception("Refresh token purge failed")


# ---------------------------------------------------------------------------
# Lifespan -- modern startup / shutdown pattern (replaces @app.on_event)
# ---------------------------------------------------------------------------


def build_auth_components(app: FastAPI, engine) -> None:
    """Wire the auth core onto app.state from an existing engine.

    Split out of lifespan so tests can wire the same graph against their own
    database without reimplementing it.
    """
    components = build_components(engine, **get_settings().auth_options)
    app.state.engine = engine
    app.state.user_store = components.users
    app.state.refresh_token_store = components.refresh_tokens
    app.state.auth_service = components.service
    app.state.access_guard = components.guard


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Startup order matters:
      1. Engine first -- creates the schema if missing.
      2. Stores, codec, hasher, service and guard -- all take the engine or
         each other by constructor.
      3. Purge task last -- references app.state.auth_service.
    """
    settings = get_settings()
    logger.info("postkeeper API starting up")
    engine = create_db_engine(settings.database_url)
    build_auth_components(app, engine)
    logger.info("Auth initialized (has_users=%s)", app.state.user_store.has_users())
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    engine.dispose()
    logger.info("postkeeper API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="postkeeper API",
    description="Account registration, login and refresh-token session management.",
    version=API_VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the LAST registration is the
# outermost layer. Register innermost first: SlowAPI, CORS, TrustedHost, then
# the @app.middleware functions below in the same inner-to-outer order.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origin_list,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)

app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=get_settings().allowed_host_list,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

# ---------------------------------------------------------------------------
# Request body cap and security headers
#
# Every auth payload is a few hundred bytes. Bodies declaring more than
# MAX_BODY_BYTES are refused before any route reads them.
# ---------------------------------------------------------------------------

MAX_BODY_BYTES = 64 * 1024

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
}


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message)).model_dump(),
    )


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    declared = request.headers.get("content-length")
    if declared is not None:
        if not declared.isdigit():
            return _error_response(400, "bad_request", "Invalid Content-Length header.")
        if int(declared) > MAX_BODY_BYTES:
            return _error_response(413, "payload_too_large", f"Request body exceeds {MAX_BODY_BYTES} bytes.")
    return await call_next(request)


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response

# ---------------------------------------------------------------------------
# Request logging middleware
#
# Every request passes through this coroutine before reaching any route
# handler. Query strings are not logged; paths never carry tokens.
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

_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.conflict: 409,
    ErrorKind.unauthorized: 401,
    ErrorKind.forbidden: 403,
    ErrorKind.not_found: 404,
    ErrorKind.internal: 500,
}


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map an AuthError kind to its HTTP status. The message is already client-safe."""
    response = JSONResponse(
        status_code=_STATUS_BY_KIND.get(exc.kind, 500),
        content=ErrorResponse(
            error=ErrorDetail(code=exc.kind.value, message=exc.message, detail=exc.detail)
        ).model_dump(),
    )
    if exc.kind is ErrorKind.unauthorized:
        response.headers["WWW-Authenticate"] = "Bearer"
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After tells clients how many seconds to wait before retrying.
    """
    retry_after = int(getattr(exc, "retry_after", 60))
    response = JSONResponse(
        status_code=429,
        content=ErrorResponse(
            error=ErrorDetail(
                code="rate_limited",
                message="Too many requests.",
                detail=str(exc.detail),
            )
        ).model_dump(),
    )
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or path params fail validation.

    Only field locations and messages are echoed back -- never the submitted
    input, which may be a password.
    """
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', 'invalid')}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=422,
        content=ErrorResponse(
            error=ErrorDetail(
                code="validation_error",
                message="Request validation failed.",
                detail=problems,
            )
        ).model_dump(),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Return a structured error for FastAPI/Starlette HTTP exceptions (404 routes, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code=f"http_{exc.status_code}",
                message=str(exc.detail),
            )
        ).model_dump(),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors (storage, hashing).

    The raw exception is written to the log only, never to the response body.
    The client receives only a generic message.
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


@app.get("/api/v1/health", tags=["Health"])
def health(request: Request) -> HealthResponse:
    """Return API liveness, version, and database reachability."""
    components = {"app": "ok"}
    try:
        components["database"] = "ok" if ping(request.app.state.engine) else "error"
    except SQLAlchemyError:
        logger.exception("Health check: database unreachable")
        components["database"] = "error"
    status = "healthy" if components["database"] == "ok" else "degraded"
    return HealthResponse(status=status, version=API_VERSION, components=components)
