"""
api/main.py -- FastAPI application entry point for MemberGate.

Run with:      uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. log_requests     -- method, path, status, latency for every request
  2. SlowAPIMiddleware -- limiter plumbing; the login and signup limits are
     checked by the @limiter.limit decorators on those routes

Lifespan builds the user store, session manager, password hasher and the
AuthService over them on startup, starts the expired-session purge task, and
tears everything down symmetrically on shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.admin import router as admin_router
from api.routes.v1.auth import router as auth_router
from auth.errors import (
    AuthError,
    DuplicateUserError,
    ForbiddenError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    UserNotFoundError,
    ValidationError,
)
from auth.passwords import PasswordHasher
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import UserStore
from core.config import get_settings

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("membergate.api")

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval: int) -> None:
    """Delete expired session rows every `interval` seconds.

    Storage housekeeping only: resolve() already treats expired rows as
    absent. CancelledError from task.cancel() during shutdown propagates out
    of asyncio.sleep and unwinds the coroutine cleanly.
    """
    while True:
        await asyncio.sleep(interval)
        await asyncio.to_thread(app.state.session_manager.purge_expired)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application-level resources across the full server lifetime.

    Everything before yield runs on startup; everything after yield runs on
    shutdown. The purge task starts last because it references the session
    manager.
    """
    settings = get_settings()
    logger.info("MemberGate API starting up")
    app.state.user_store = UserStore(settings.database_url)
    app.state.session_manager = SessionManager(
        settings.database_url,
        secret_key=settings.secret_key,
        expire_seconds=settings.session_expire_seconds,
    )
    app.state.auth_service = AuthService(
        app.state.user_store,
        app.state.session_manager,
        PasswordHasher(rounds=settings.bcrypt_rounds),
    )
    if not app.state.user_store.count_admins():
        logger.warning("No admin account exists. Promote one with: python main.py promote <username>")
    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))
    logger.info("Auth initialized (session window %ds)", settings.session_expire_seconds)

    yield

    # Shutdown
    app.state.purge_task.cancel()
    app.state.session_manager.close()
    app.state.user_store.close()
    logger.info("MemberGate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="MemberGate API",
    description="Account registration, session login and admin role management.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(SlowAPIMiddleware)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter


# ---------------------------------------------------------------------------
# Request logging middleware
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
app.include_router(admin_router, prefix="/api/v1", tags=["Admin"])
# Web UI router is mounted by asgi.py, not here.


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _envelope(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


_AUTH_ERROR_STATUS: dict[type[AuthError], int] = {
    ValidationError: 422,
    DuplicateUserError: 409,
    InvalidCredentialsError: 401,
    NotAuthenticatedError: 401,
    ForbiddenError: 403,
    UserNotFoundError: 404,
}


def auth_error_status(exc: AuthError) -> int:
    for cls in type(exc).__mro__:
        if cls in _AUTH_ERROR_STATUS:
            return _AUTH_ERROR_STATUS[cls]
    return 400


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Map auth core failures onto the error envelope.

    The message is the user-safe text carried by the exception. Validation
    failures add the per-field messages (never the submitted values).
    """
    detail = "; ".join(exc.errors) if isinstance(exc, ValidationError) and exc.errors else None
    response = _envelope(auth_error_status(exc), exc.code, exc.message, detail=detail)
    response.headers["Cache-Control"] = "no-store"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """429 with Retry-After. Signup and login are the only limited routes."""
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit hit on %s from %s", request.url.path, client)
    response = _envelope(429, "rate_limited", "Too many attempts. Try again later.", detail=str(exc.detail))
    response.headers["Retry-After"] = str(int(getattr(exc, "retry_after", 60)))
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request shape (missing field, wrong JSON type, unknown role).

    Detail uses the same "loc: msg" form as ValidationError from the auth core.
    The offending input is left out: it may be a password.
    """
    detail = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
    return _envelope(422, "validation_error", "Request validation failed.", detail=detail)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Wrap HTTPException in the envelope.

    Registered for Starlette's class so routing errors (404, 405) get the
    envelope too. The auth dependencies raise with a {"code", "message"} dict
    detail, which becomes the error field as is.
    """
    if isinstance(exc.detail, dict):
        response = JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    else:
        response = _envelope(exc.status_code, f"http_{exc.status_code}", str(exc.detail))
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything else is a server fault: HashFormatError, SQLAlchemyError.

    Logged with traceback; the client only learns that something failed.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _envelope(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
# ---------------------------------------------------------------------------


@app.get("/api/v1/health", include_in_schema=True, tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
