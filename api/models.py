"""
API request and response models for MemberGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models are deliberately loose (plain str fields): the auth core does
the real validation so the API and the HTML forms apply identical rules and
produce the same ValidationError.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict

from auth.models import Identity, Role

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    username: str
    email: str
    password: str


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: str
    password: str


class RoleUpdate(BaseModel):
    """Request body for PUT /api/v1/admin/users/{username}/role."""

    role: Role


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class IdentityResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    username: str
    email: str
    role: str

    @classmethod
    def from_identity(cls, identity: Identity) -> "IdentityResponse":
        return cls(username=identity.username, email=identity.email, role=identity.role)


class SessionResponse(BaseModel):
    """Returned by register and login.

    session_id is also set as an httpOnly cookie. API clients that do not
    keep cookies send it back as Authorization: Bearer <session_id>.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    expires_in: int
    identity: IdentityResponse


class SessionStatusResponse(BaseModel):
    """Response for GET /api/v1/auth/session."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    identity: Optional[IdentityResponse] = None


class UserRoleRow(BaseModel):
    """One row of the admin user listing. No email, no password hash."""

    model_config = ConfigDict(frozen=True)

    username: str
    role: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
