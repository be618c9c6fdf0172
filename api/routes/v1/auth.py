"""
api/routes/v1/auth.py -- Registration, login, logout and session status.

Routes:
  POST /api/v1/auth/register   -- create account; sets session cookie; 201
  POST /api/v1/auth/login      -- password login; sets session cookie
  POST /api/v1/auth/logout     -- destroys the session, clears cookie; always 200
  GET  /api/v1/auth/session    -- {authenticated, identity?} for the caller

Security:
  POST /login and /register are rate-limited per client IP (Settings).
  Login failures come back as one 401 "invalid_credentials" body whether the
    email is unknown or the password is wrong.
  Every successful login issues a NEW session id; the one the client held
    before is destroyed (session fixation).
  Cache-Control: no-store on responses that carry a session id.

AuthError subclasses raised by the service are turned into the error envelope
by the handler in api/main.py; handlers here only deal with the happy path.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, signup_limit
from api.models import (
    IdentityResponse,
    LoginRequest,
    MessageResponse,
    RegisterRequest,
    SessionResponse,
    SessionStatusResponse,
)
from auth.dependencies import get_auth_service, get_session_id
from auth.models import SessionGrant
from auth.service import AuthService
from auth.sessions import clear_session_cookie, set_session_cookie
from core.config import get_settings

_settings = get_settings()

# Auth policy:
# - POST /api/v1/auth/register: public -- creates the account
# - POST /api/v1/auth/login:    public -- login endpoint must be unauthenticated
# - POST /api/v1/auth/logout:   public -- logging out an unknown session is a no-op
# - GET  /api/v1/auth/session:  public -- reports anonymous as authenticated=false
router = APIRouter()


def _grant_response(grant: SessionGrant, status_code: int) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(
            session_id=grant.session_id,
            expires_in=_settings.session_expire_seconds,
            identity=IdentityResponse.from_identity(grant.identity),
        ).model_dump(),
    )
    set_session_cookie(resp, grant.session_id, _settings.session_expire_seconds, secure=_settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/register", response_model=SessionResponse, status_code=201)
@limiter.limit(signup_limit)
def register(
    request: Request,
    body: RegisterRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Create a user with role "user" and return an authenticated session."""
    grant = service.register_user(body.username, body.email, body.password, replaces=get_session_id(request))
    return _grant_response(grant, status_code=201)


@router.post("/auth/login", response_model=SessionResponse)
@limiter.limit(login_limit)  # brute-force mitigation
def login(
    request: Request,
    body: LoginRequest,
    service: AuthService = Depends(get_auth_service),
) -> JSONResponse:
    """Authenticate with email and password; return a fresh session."""
    grant = service.login(body.email, body.password, replaces=get_session_id(request))
    return _grant_response(grant, status_code=200)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, service: AuthService = Depends(get_auth_service)) -> JSONResponse:
    """Destroy the caller's session and clear the cookie. Idempotent."""
    service.logout(get_session_id(request))
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    clear_session_cookie(resp)
    return resp


@router.get("/auth/session", response_model=SessionStatusResponse)
def session_status(request: Request, service: AuthService = Depends(get_auth_service)) -> SessionStatusResponse:
    """Report whether the caller's session is authenticated, and as whom."""
    status = service.check_session(get_session_id(request))
    if not status.authenticated:
        return SessionStatusResponse(authenticated=False)
    return SessionStatusResponse(authenticated=True, identity=IdentityResponse.from_identity(status.identity))
