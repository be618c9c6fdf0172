"""
auth/sessions.py -- Server-side session store and cookie helpers.

Sessions live in the database rather than in a signed client token so that:
  - logout is real: destroy() deletes the row and the id is dead everywhere
  - any process pointed at the same DATABASE_URL can resolve any session
  - sessions survive a restart (given a stable SECRET_KEY)

State machine per session:
  Anonymous --authenticate()--> Authenticated --destroy()--> (gone)
  Either state --now > expires_at--> Expired (resolves to None, row deleted)

Security design decisions:
  Session id: secrets.token_urlsafe(32), 256 bits of entropy. Only the client
      ever sees it.

  Storage key: HMAC-SHA256(SECRET_KEY, session_id). Deterministic, so lookup
      is a primary-key hit, and a copy of the sessions table alone is not a
      set of live credentials. Same reasoning as API key hashing: a long
      random token does not need bcrypt's slowness.

  Expiry: fixed window from authentication time. No sliding renewal. Checked
      lazily at resolve(); purge_expired() only reclaims storage and uses the
      expires_at index so it never scans the table.

  Identity snapshot: authenticate() copies username/email/role into the row.
      A later role change does not touch existing rows.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from collections.abc import Callable

from sqlalchemy import Boolean, Column, Float, Index, MetaData, String, Table
from sqlalchemy.engine import Engine

from auth.db import make_engine
from auth.errors import SessionNotFoundError
from auth.models import Identity, SessionRecord

logger = logging.getLogger("membergate.sessions")

SESSION_COOKIE = "session_id"
DEFAULT_EXPIRE_SECONDS = 60 * 60  # 1 hour

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("token_hash", String(64), primary_key=True),  # HMAC-SHA256 hex of the raw id
    Column("authenticated", Boolean, nullable=False, default=False),
    Column("username", String(20)),  # identity snapshot, NULL while anonymous
    Column("email", String(255)),
    Column("role", String(10)),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False),
    Index("ix_sessions_expires_at", "expires_at"),
)


class SessionManager:
    """Issues, resolves and destroys server-side sessions.

    Usage:
        sessions = SessionManager("sqlite:///membergate.db", secret_key=settings.secret_key)
        sid = sessions.issue()
        sessions.authenticate(sid, Identity("alice", "alice@x.com", "user"))
        record = sessions.resolve(sid)   # SessionRecord or None
        sessions.destroy(sid)

    clock returns epoch seconds; tests inject a fake to cross expiry
    boundaries without sleeping.
    """

    def __init__(
        self,
        db_url: str,
        secret_key: str,
        expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.engine: Engine = make_engine(db_url)
        self.expire_seconds = expire_seconds
        self._secret = secret_key.encode("utf-8")
        self._clock = clock
        _metadata.create_all(self.engine)

    def _key(self, session_id: str) -> str:
        return hmac.new(self._secret, session_id.encode("utf-8"), hashlib.sha256).hexdigest()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def issue(self) -> str:
        """Create an anonymous session and return its raw id."""
        session_id = secrets.token_urlsafe(32)
        now = self._clock()
        with self.engine.begin() as conn:
            conn.execute(
                _sessions.insert().values(
                    token_hash=self._key(session_id),
                    authenticated=False,
                    created_at=now,
                    expires_at=now + self.expire_seconds,
                )
            )
        return session_id

    def authenticate(self, session_id: str, identity: Identity) -> None:
        """Promote a live session to Authenticated and snapshot identity into it.

        The expiry window restarts at this instant. Raises SessionNotFoundError
        if the session is missing, destroyed or already expired.
        """
        now = self._clock()
        with self.engine.begin() as conn:
            result = conn.execute(
                _sessions.update()
                .where((_sessions.c.token_hash == self._key(session_id)) & (_sessions.c.expires_at >= now))
                .values(
                    authenticated=True,
                    username=identity.username,
                    email=identity.email,
                    role=identity.role,
                    expires_at=now + self.expire_seconds,
                )
            )
        if result.rowcount == 0:
            raise SessionNotFoundError()

    def resolve(self, session_id: str | None) -> SessionRecord | None:
        """Return the live session for session_id, or None.

        Missing, destroyed and expired sessions are indistinguishable to the
        caller. An expired row found here is deleted on the spot.
        """
        if not session_id:
            return None
        key = self._key(session_id)
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.token_hash == key)).fetchone()
        if row is None:
            return None
        if self._clock() > row.expires_at:
            self._delete(key)
            return None
        return _row_to_record(row)

    def destroy(self, session_id: str | None) -> None:
        """Delete the session. Unknown or already-destroyed ids are a no-op."""
        if not session_id:
            return
        self._delete(self._key(session_id))

    def purge_expired(self) -> int:
        """Delete every expired session. Returns number of rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at < self._clock()))
        if result.rowcount:
            logger.info("Purged %d expired sessions", result.rowcount)
        return result.rowcount

    def _delete(self, key: str) -> None:
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.token_hash == key))

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_record(row) -> SessionRecord:
    identity = None
    if row.authenticated and row.username is not None:
        identity = Identity(username=row.username, email=row.email, role=row.role)
    return SessionRecord(
        authenticated=bool(row.authenticated) and identity is not None,
        created_at=row.created_at,
        expires_at=row.expires_at,
        identity=identity,
    )


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str, max_age: int, secure: bool = False) -> None:
    """Write the raw session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    samesite="lax": not sent on cross-site POST -- CSRF mitigation for the
        form routes.
    secure: only sent over HTTPS when SECURE_COOKIES=true.
    max_age: matches the server-side window so both expire together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=session_id,
        httponly=True,
        samesite="lax",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE)
