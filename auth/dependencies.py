"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication.

The session id is read from, in priority order:
  1. "session_id" cookie -- set by the web UI and by the JSON login endpoint.
  2. Authorization: Bearer <session_id> header -- non-browser API clients.

Handlers receive the resolved Identity (or the raw session id) as an explicit
parameter. Nothing is stashed on request.state.

get_current_identity() raises HTTP 401 if unauthenticated.
require_admin() raises HTTP 401 if unauthenticated, HTTP 403 if not admin.
The web layer does its own redirect-based gating (web/routes.py) on top of
the same AuthService calls.

Layer rule: no imports from web/ or core/. auth/dependencies.py may import
from fastapi because this module is part of the FastAPI DI system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.errors import ForbiddenError, NotAuthenticatedError
from auth.models import Identity
from auth.service import AuthService
from auth.sessions import SESSION_COOKIE


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_session_id(request: Request) -> str | None:
    """Return the raw session id the client presented, or None."""
    session_id = request.cookies.get(SESSION_COOKIE)
    if session_id:
        return session_id
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:] or None
    return None


def try_get_identity(request: Request) -> Identity | None:
    """Return the identity snapshot of the request's session, None if anonymous.

    Never raises -- callers that need a hard 401 use get_current_identity().
    """
    status = get_auth_service(request).check_session(get_session_id(request))
    return status.identity if status.authenticated else None


def get_current_identity(request: Request) -> Identity:
    """Require authentication. Raises HTTP 401 if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(identity: Identity = Depends(get_current_identity)): ...
    """
    identity = try_get_identity(request)
    if identity is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthenticated", "message": "Authentication required."},
        )
    return identity


def require_admin(request: Request) -> Identity:
    """Require the admin role. Raises HTTP 401 if unauthenticated, HTTP 403 if not admin.

    Use as a FastAPI dependency:
        @router.post("/admin-only")
        def route(admin: Identity = Depends(require_admin)): ...
    """
    service = get_auth_service(request)
    try:
        return service.require_admin(get_session_id(request))
    except NotAuthenticatedError as exc:
        raise HTTPException(status_code=401, detail={"code": exc.code, "message": exc.message}) from exc
    except ForbiddenError as exc:
        raise HTTPException(status_code=403, detail={"code": exc.code, "message": exc.message}) from exc
