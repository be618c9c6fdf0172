"""
auth/gate.py -- Authorization predicates over a resolved session.

Two independent checks, applied in request order:
  is_authenticated -- a live session that completed login
  is_authorized    -- authenticated AND snapshot role == required role

Role match is exact. There is no hierarchy: admin does not implicitly satisfy
a "user" requirement unless a route asks for it explicitly.

The gate only reads SessionRecords; resolving ids to records is the
SessionManager's job. Expired and missing sessions arrive here as None and
take the same "unauthenticated" path.

Layer rule: no imports from api/, web/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass

from auth.models import SessionRecord

UNAUTHENTICATED = "unauthenticated"
FORBIDDEN = "forbidden"


@dataclass(frozen=True)
class GateDecision:
    """granted, or denied with reason UNAUTHENTICATED / FORBIDDEN.

    The two reasons stay distinct: "please log in" redirects to the login
    page, "logged in but not permitted" is a 403 with no redirect.
    """

    granted: bool
    reason: str | None = None


GRANTED = GateDecision(granted=True)


def is_authenticated(record: SessionRecord | None) -> bool:
    return record is not None and record.authenticated and record.identity is not None


def is_authorized(record: SessionRecord | None, required_role: str) -> bool:
    return is_authenticated(record) and record.identity.role == required_role


def evaluate(record: SessionRecord | None, required_role: str | None = None) -> GateDecision:
    """Decide whether a request holding record may proceed.

    required_role=None checks authentication only.
    """
    if not is_authenticated(record):
        return GateDecision(granted=False, reason=UNAUTHENTICATED)
    if required_role is not None and not is_authorized(record, required_role):
        return GateDecision(granted=False, reason=FORBIDDEN)
    return GRANTED
