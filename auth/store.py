"""
auth/store.py -- SQLAlchemy Core persistence layer for user records.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user is the mapper.
Service and route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Uniqueness of username and email is enforced by UNIQUE constraints, not by
  a lookup before the insert. Two concurrent signups for the same name both
  reach INSERT; the database admits one and the other surfaces as
  DuplicateUserError. There is no check-then-act window.

  list_users() only projects whitelisted columns. hashed_password is not in
  the whitelist and cannot be requested.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime, timezone

from sqlalchemy import CheckConstraint, Column, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.db import make_engine
from auth.errors import DuplicateUserError
from auth.models import VALID_ROLES, Role, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(20), nullable=False, unique=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(10), nullable=False, server_default=Role.USER.value),
    Column("created_at", String(32), nullable=False),
    Column("last_login", String(32)),  # ISO 8601 timestamp of last successful login
    CheckConstraint("role IN ('user', 'admin')", name="ck_users_role"),
)

# Columns list_users() may return. hashed_password is intentionally absent.
PROJECTABLE_COLUMNS: frozenset[str] = frozenset({"id", "username", "email", "role", "created_at", "last_login"})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _check_role(role: str) -> None:
    if role not in VALID_ROLES:
        raise ValueError(f"Unknown role {role!r}; expected one of {sorted(VALID_ROLES)}")


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///membergate.db")
        store.create_user(User(username="alice", email="alice@x.com", hashed_password=hasher.hash("pw123")))
        user = store.get_by_email("alice@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises DuplicateUserError if the username or email is already taken,
        including when a concurrent request inserted it a moment earlier.
        Raises ValueError for a role outside the Role enum.
        """
        _check_role(user.role)
        try:
            with self.engine.begin() as conn:
                result = conn.execute(
                    _users.insert().values(
                        username=user.username,
                        email=user.email,
                        hashed_password=user.hashed_password,
                        role=user.role,
                        created_at=_now_iso(),
                    )
                )
        except IntegrityError as exc:
            raise DuplicateUserError() from exc
        return result.inserted_primary_key[0]

    def set_role(self, username: str, role: str) -> bool:
        """Set the role of a user. Returns False if username does not exist.

        A single-row UPDATE: concurrent promote/demote of the same user is
        last write wins.
        """
        _check_role(role)
        with self.engine.begin() as conn:
            result = conn.execute(_users.update().where(_users.c.username == username).values(role=role))
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self, projection: Sequence[str] = ("username", "role")) -> list[dict]:
        """Return every user as a dict holding only the projected columns.

        Ordered by username. Unknown columns (including hashed_password)
        raise ValueError rather than being silently dropped.
        """
        unknown = set(projection) - PROJECTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Columns not available for listing: {sorted(unknown)!r}")
        if not projection:
            raise ValueError("Projection must name at least one column.")
        columns = [_users.c[name] for name in projection]
        with self.engine.connect() as conn:
            rows = conn.execute(select(*columns).order_by(_users.c.username)).fetchall()
        return [dict(row._mapping) for row in rows]

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def count_admins(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_users).where(_users.c.role == Role.ADMIN.value)
            ).scalar()
        return result or 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        created_at=row.created_at,
        last_login=row.last_login,
    )
