"""
api/routes/v1/admin.py -- Admin-only user listing and role mutation.

Routes:
  GET  /api/v1/admin/users                       -- [{username, role}, ...]
  PUT  /api/v1/admin/users/{username}/role       -- body {"role": "user"|"admin"}
  POST /api/v1/admin/users/{username}/promote    -- role := admin
  POST /api/v1/admin/users/{username}/demote     -- role := user

Every route here is behind require_admin at the router level, and the service
re-checks the acting session before each mutation. The mutation routes are
gated exactly like the listing; none of them is reachable without an admin
session.

A role change does not reach the target's open sessions. The target sees the
new role after their next login.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, RoleUpdate, UserRoleRow
from auth.dependencies import get_auth_service, get_session_id, require_admin
from auth.service import AuthService

# Auth policy:
# - all routes: require admin (router-level dependency) -- 401 anonymous, 403 non-admin
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/admin/users", response_model=list[UserRoleRow])
def list_users(request: Request, service: AuthService = Depends(get_auth_service)) -> list[UserRoleRow]:
    """List every user's username and role, ordered by username."""
    rows = service.list_users(get_session_id(request))
    return [UserRoleRow(**row) for row in rows]


@router.put("/admin/users/{username}/role", response_model=MessageResponse)
def set_role(
    request: Request,
    username: str,
    body: RoleUpdate,
    service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    """Set a user's role. 404 if the user does not exist."""
    service.set_user_role(get_session_id(request), username, body.role.value)
    return MessageResponse(message=f"Role of {username} set to {body.role.value}.")


@router.post("/admin/users/{username}/promote", response_model=MessageResponse)
def promote(request: Request, username: str, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.promote(get_session_id(request), username)
    return MessageResponse(message=f"{username} promoted to admin.")


@router.post("/admin/users/{username}/demote", response_model=MessageResponse)
def demote(request: Request, username: str, service: AuthService = Depends(get_auth_service)) -> MessageResponse:
    service.demote(get_session_id(request), username)
    return MessageResponse(message=f"{username} demoted to user.")
