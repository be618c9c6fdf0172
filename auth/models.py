"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own the
domain shape; stores, the session manager and the service do the work.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Coarse-grained privilege level. Exactly one per user.

    str mixin: Role.ADMIN == "admin" is True, so values read back from the
    database compare cleanly against the enum.
    """

    USER = "user"
    ADMIN = "admin"


VALID_ROLES: frozenset[str] = frozenset(r.value for r in Role)


@dataclass
class User:
    """A registered principal.

    email is the login lookup key; username is the human-facing handle and
    the key for privileged operations (promote/demote by username).
    hashed_password is always a bcrypt hash -- plaintext is never stored.
    """

    username: str
    email: str
    hashed_password: str
    role: str = Role.USER.value
    id: int | None = None
    created_at: str | None = None
    last_login: str | None = None


@dataclass(frozen=True)
class Identity:
    """The username/email/role copied into a session at login.

    A snapshot, not a live reference: promoting or demoting the underlying
    user does not change an Identity already held by an open session.
    """

    username: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user: User) -> Identity:
        return cls(username=user.username, email=user.email, role=user.role)


@dataclass(frozen=True)
class SessionRecord:
    """A resolved, unexpired session row.

    identity is None while the session is anonymous. expires_at and
    created_at are epoch seconds.
    """

    authenticated: bool
    expires_at: float
    created_at: float
    identity: Identity | None = None


@dataclass(frozen=True)
class SessionGrant:
    """Result of a successful signup or login: the new raw session id plus
    the identity snapshot it carries. The raw id is handed to the client once
    and never persisted."""

    session_id: str
    identity: Identity


@dataclass(frozen=True)
class SessionStatus:
    authenticated: bool
    identity: Identity | None = None
