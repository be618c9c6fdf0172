"""
auth/service.py -- Boundary operations of the auth core.

AuthService is what the presentation layers (api/, web/, the CLI) call. Every
gated operation takes the caller's session id as an explicit argument; there
is no ambient "current user".

Ordering within a request is strict:
  signup: validate -> hash -> INSERT (uniqueness) -> issue + authenticate
  login:  validate -> lookup by email -> verify -> issue + authenticate

Each store call and each bcrypt call is a blocking point where other requests
may interleave. Uniqueness is settled by the INSERT itself, so two concurrent
signups for the same username cannot both succeed.

Failure policy:
  AuthError subclasses are recoverable and carry a user-safe message.
  HashFormatError and SQLAlchemy errors propagate untouched: the request fails,
  nothing is retried. Password verification is deterministic and is never
  retried.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import logging

from auth import gate
from auth.errors import (
    ForbiddenError,
    HashFormatError,
    InvalidCredentialsError,
    NotAuthenticatedError,
)
from auth.models import Identity, Role, SessionGrant, SessionStatus, User
from auth.passwords import PasswordHasher
from auth.roles import RoleService
from auth.sessions import SessionManager
from auth.store import UserStore
from auth.validation import parse_login, parse_signup

logger = logging.getLogger("membergate.auth")


class AuthService:
    """Credential, session and role operations over one store trio.

    Usage:
        service = AuthService(UserStore(url), SessionManager(url, key), PasswordHasher())
        grant = service.register_user("alice", "alice@x.com", "pw123")
        service.check_session(grant.session_id).authenticated   # True
        service.logout(grant.session_id)
    """

    def __init__(self, users: UserStore, sessions: SessionManager, hasher: PasswordHasher) -> None:
        self.users = users
        self.sessions = sessions
        self.hasher = hasher
        self.roles = RoleService(users)

    # ------------------------------------------------------------------
    # Credential lifecycle
    # ------------------------------------------------------------------

    def register_user(self, username: str, email: str, password: str, *, replaces: str | None = None) -> SessionGrant:
        """Create a user with role "user" and log them in.

        Raises ValidationError or DuplicateUserError. On success any session
        named by replaces is destroyed and a fresh authenticated one issued.
        """
        form = parse_signup(username, email, password)
        hashed = self.hasher.hash(form.password)
        user = User(username=form.username, email=form.email, hashed_password=hashed, role=Role.USER.value)
        user.id = self.users.create_user(user)
        logger.info("Registered user %r", user.username)
        return self._start_session(user, replaces)

    def login(self, email: str, password: str, *, replaces: str | None = None) -> SessionGrant:
        """Verify email/password and issue a fresh authenticated session.

        Unknown email and wrong password both raise InvalidCredentialsError
        with the same message, after the same amount of bcrypt work. The
        server log records which one it was.
        """
        form = parse_login(email, password)
        user = self.users.get_by_email(form.email)
        if user is None:
            self.hasher.verify_dummy(form.password)
            logger.info("Login failed: no account for email")
            raise InvalidCredentialsError()
        try:
            matched = self.hasher.verify(form.password, user.hashed_password)
        except HashFormatError:
            logger.error("Stored password hash for user %r is malformed", user.username)
            raise
        if not matched:
            logger.info("Login failed: wrong password for user %r", user.username)
            raise InvalidCredentialsError()
        self.users.update_last_login(user.id)
        logger.info("User %r logged in", user.username)
        return self._start_session(user, replaces)

    def _start_session(self, user: User, replaces: str | None) -> SessionGrant:
        # Always a new id after login: a pre-login id the client held (or was
        # handed by an attacker) never becomes authenticated.
        self.sessions.destroy(replaces)
        identity = Identity.from_user(user)
        session_id = self.sessions.issue()
        self.sessions.authenticate(session_id, identity)
        return SessionGrant(session_id=session_id, identity=identity)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    def logout(self, session_id: str | None) -> None:
        """Destroy the session. Always succeeds."""
        self.sessions.destroy(session_id)

    def check_session(self, session_id: str | None) -> SessionStatus:
        record = self.sessions.resolve(session_id)
        if not gate.is_authenticated(record):
            return SessionStatus(authenticated=False)
        return SessionStatus(authenticated=True, identity=record.identity)

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    def authorize(self, session_id: str | None, role: str | None = None) -> tuple[gate.GateDecision, Identity | None]:
        """Resolve session_id once and gate it.

        Returns the decision and, when granted, the identity snapshot the
        caller should act as.
        """
        record = self.sessions.resolve(session_id)
        decision = gate.evaluate(record, role)
        return decision, (record.identity if decision.granted else None)

    def require_role(self, session_id: str | None, role: str | None = None) -> gate.GateDecision:
        """Evaluate the gate for session_id. role=None requires login only."""
        decision, _identity = self.authorize(session_id, role)
        return decision

    def require_admin(self, session_id: str | None) -> Identity:
        """Return the admin identity behind session_id or raise.

        NotAuthenticatedError for no/expired session, ForbiddenError for a
        non-admin snapshot.
        """
        record = self.sessions.resolve(session_id)
        decision = gate.evaluate(record, Role.ADMIN.value)
        if decision.reason == gate.UNAUTHENTICATED:
            raise NotAuthenticatedError()
        if decision.reason == gate.FORBIDDEN:
            logger.warning("Non-admin %r denied admin operation", record.identity.username)
            raise ForbiddenError()
        return record.identity

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    def list_users(self, session_id: str | None) -> list[dict]:
        """Return [{"username", "role"}, ...] for every user. Admin only."""
        self.require_admin(session_id)
        return self.users.list_users(projection=("username", "role"))

    def set_user_role(self, acting_session_id: str | None, target_username: str, new_role: str) -> None:
        """Change target_username's role. Admin only.

        Raises NotAuthenticatedError, ForbiddenError, ValidationError or
        UserNotFoundError. Open sessions of the target keep their old role.
        """
        actor = self.require_admin(acting_session_id)
        self.roles.set_role(target_username, new_role)
        logger.info("Admin %r set role of %r to %r", actor.username, target_username, new_role)

    def promote(self, acting_session_id: str | None, username: str) -> None:
        self.set_user_role(acting_session_id, username, Role.ADMIN.value)

    def demote(self, acting_session_id: str | None, username: str) -> None:
        self.set_user_role(acting_session_id, username, Role.USER.value)
