"""
web/routes.py -- Jinja2 template routes for the MemberGate web UI.

These routes serve server-rendered HTML over the same AuthService the JSON
API uses (app.state.auth_service). They differ from the API only in how a
denial is presented:
  not logged in          -> 302 to /login?next=<path>
  logged in, not admin   -> 403 error page, no redirect

Routes:
  GET  /                 -- home: links or greeting
  GET  /signup           -- signup form
  POST /signup           -- create account, log in, redirect /members
  GET  /login            -- login form
  POST /login            -- password login, redirect ?next or /members
  GET  /logout           -- destroy session, redirect /
  POST /logout           -- same, for form buttons
  GET  /members          -- members page (auth required)
  GET  /admin            -- user listing (admin required)
  POST /admin/promote    -- role := admin (admin required)
  POST /admin/demote     -- role := user (admin required)
"""

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from api.limiter import limiter, login_limit, signup_limit
from auth import gate
from auth.dependencies import get_auth_service, get_session_id
from auth.errors import (
    AuthError,
    DuplicateUserError,
    ForbiddenError,
    InvalidCredentialsError,
    NotAuthenticatedError,
    ValidationError,
)
from auth.models import Identity, Role, SessionGrant
from auth.sessions import clear_session_cookie, set_session_cookie
from core.config import get_settings

logger = logging.getLogger("membergate.web")

_settings = get_settings()

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# ---------------------------------------------------------------------------
# Auth helpers
# ---------------------------------------------------------------------------

# Whitelist mapping for ?error= query params on /login and /signup.
# The raw query param is NEVER passed to templates -- only the message from
# this dict is. Prevents reflected XSS via crafted error query strings.
_ERROR_MESSAGES: dict[str, str] = {
    ValidationError.code: "Please check the highlighted fields and try again.",
    DuplicateUserError.code: "Username or email already exists. Try again.",
    InvalidCredentialsError.code: InvalidCredentialsError.default_message,
    "not_found": "That user does not exist.",
}


def _safe_next(next_url: Optional[str]) -> str:
    """Validate a post-login redirect target. Only accept relative paths.

    Rejects absolute URLs and protocol-relative "//host" URLs, which would
    redirect off-site after login.
    """
    if next_url and next_url.startswith("/") and not next_url.startswith("//"):
        return next_url
    return "/members"


def _forbidden(request: Request) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "error.html",
        {"error": "Not Authorized"},
        status_code=403,
    )


def _to_login(request: Request) -> RedirectResponse:
    return RedirectResponse(f"/login?next={request.url.path}", status_code=302)


def _denial(request: Request, exc: AuthError) -> Optional[Response]:
    """Page for a gate failure raised by the service after _gate() passed.

    The session can expire between the two resolutions. Returns None for
    errors that are not gate failures.
    """
    if isinstance(exc, NotAuthenticatedError):
        return _to_login(request)
    if isinstance(exc, ForbiddenError):
        return _forbidden(request)
    return None


def _gate(request: Request, role: Optional[str] = None) -> tuple[Optional[Identity], Optional[Response]]:
    """Run the auth gate for this request.

    Returns (identity, None) when the request may proceed, otherwise
    (None, response) where response is the redirect or the 403 page.
    Call at the top of protected route handlers:
        identity, denied = _gate(request, Role.ADMIN.value)
        if denied:
            return denied
    """
    decision, identity = get_auth_service(request).authorize(get_session_id(request), role)
    if decision.reason == gate.UNAUTHENTICATED:
        return None, _to_login(request)
    if decision.reason == gate.FORBIDDEN:
        logger.warning("Forbidden: non-admin session requested %s", request.url.path)
        return None, _forbidden(request)
    return identity, None


def _login_redirect(grant: SessionGrant, target: str) -> RedirectResponse:
    resp = RedirectResponse(target, status_code=302)
    set_session_cookie(resp, grant.session_id, _settings.session_expire_seconds, secure=_settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Public pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    status = get_auth_service(request).check_session(get_session_id(request))
    return templates.TemplateResponse(
        request,
        "index.html",
        {"authenticated": status.authenticated, "identity": status.identity},
    )


@router.get("/signup", response_class=HTMLResponse)
def signup_form(request: Request) -> HTMLResponse:
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(request, "signup.html", {"error_msg": error_msg})


@router.post("/signup", response_class=HTMLResponse)
@limiter.limit(signup_limit)
def signup_post(
    request: Request,
    username: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
) -> Response:
    """Handle signup form submission.

    Empty fields are passed through to the service so they fail with the
    same ValidationError as any other malformed input.
    """
    service = get_auth_service(request)
    try:
        grant = service.register_user(username, email, password, replaces=get_session_id(request))
    except ValidationError as exc:
        return templates.TemplateResponse(
            request,
            "signup.html",
            {"error_msg": _ERROR_MESSAGES[exc.code], "errors": exc.errors},
        )
    except DuplicateUserError as exc:
        return RedirectResponse(f"/signup?error={exc.code}", status_code=302)
    return _login_redirect(grant, "/members")


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request) -> Response:
    """Render the login page. Already-authenticated users go to /members."""
    if get_auth_service(request).check_session(get_session_id(request)).authenticated:
        return RedirectResponse("/members", status_code=302)
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    next_url = _safe_next(request.query_params.get("next"))
    return templates.TemplateResponse(request, "login.html", {"error_msg": error_msg, "next_url": next_url})


@router.post("/login", response_class=HTMLResponse)
@limiter.limit(login_limit)  # brute-force mitigation
def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next_url: str = Form("", alias="next"),
) -> RedirectResponse:
    """Handle email/password login form submission.

    Malformed input and bad credentials both bounce back to /login with a
    whitelisted error code.
    """
    service = get_auth_service(request)
    try:
        grant = service.login(email, password, replaces=get_session_id(request))
    except (ValidationError, InvalidCredentialsError) as exc:
        return RedirectResponse(f"/login?error={exc.code}", status_code=302)
    return _login_redirect(grant, _safe_next(next_url))


@router.get("/logout")
@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Destroy the session, clear the cookie and go home."""
    get_auth_service(request).logout(get_session_id(request))
    resp = RedirectResponse("/", status_code=302)
    clear_session_cookie(resp)
    return resp


# ---------------------------------------------------------------------------
# Members area
# ---------------------------------------------------------------------------


@router.get("/members", response_class=HTMLResponse)
def members(request: Request) -> Response:
    identity, denied = _gate(request)
    if denied:
        return denied
    return templates.TemplateResponse(request, "members.html", {"identity": identity})


# ---------------------------------------------------------------------------
# Admin area -- every route gated identically
# ---------------------------------------------------------------------------


@router.get("/admin", response_class=HTMLResponse)
def admin(request: Request) -> Response:
    identity, denied = _gate(request, Role.ADMIN.value)
    if denied:
        return denied
    try:
        users = get_auth_service(request).list_users(get_session_id(request))
    except AuthError as exc:
        page = _denial(request, exc)
        if page is None:
            raise
        return page
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("error", ""))
    return templates.TemplateResponse(
        request,
        "admin.html",
        {"identity": identity, "users": users, "error_msg": error_msg},
    )


def _change_role(request: Request, username: str, role: str) -> Response:
    _identity, denied = _gate(request, Role.ADMIN.value)
    if denied:
        return denied
    try:
        get_auth_service(request).set_user_role(get_session_id(request), username, role)
    except AuthError as exc:
        page = _denial(request, exc)
        if page is not None:
            return page
        if exc.code not in _ERROR_MESSAGES:
            raise
        return RedirectResponse(f"/admin?error={exc.code}", status_code=302)
    return RedirectResponse("/admin", status_code=302)


@router.post("/admin/promote")
def admin_promote(request: Request, user: str = Form("")) -> Response:
    return _change_role(request, user, Role.ADMIN.value)


@router.post("/admin/demote")
def admin_demote(request: Request, user: str = Form("")) -> Response:
    return _change_role(request, user, Role.USER.value)
