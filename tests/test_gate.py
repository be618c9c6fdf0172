"""Unit tests for auth/gate.py -- authentication and role predicates."""

import pytest

from auth import gate
from auth.models import Identity, SessionRecord

NOW = 1_700_000_000.0


def _record(role: str | None) -> SessionRecord:
    if role is None:
        return SessionRecord(authenticated=False, expires_at=NOW + 3600, created_at=NOW)
    return SessionRecord(
        authenticated=True,
        expires_at=NOW + 3600,
        created_at=NOW,
        identity=Identity(username="alice", email="alice@x.com", role=role),
    )


class TestIsAuthenticated:
    def test_missing_session(self) -> None:
        assert gate.is_authenticated(None) is False

    def test_anonymous_session(self) -> None:
        assert gate.is_authenticated(_record(None)) is False

    def test_authenticated_session(self) -> None:
        assert gate.is_authenticated(_record("user")) is True


class TestIsAuthorized:
    def test_exact_role_match(self) -> None:
        assert gate.is_authorized(_record("admin"), "admin") is True

    def test_user_is_not_admin(self) -> None:
        assert gate.is_authorized(_record("user"), "admin") is False

    def test_no_role_hierarchy(self) -> None:
        assert gate.is_authorized(_record("admin"), "user") is False

    def test_anonymous_never_authorized(self) -> None:
        assert gate.is_authorized(_record(None), "user") is False
        assert gate.is_authorized(None, "admin") is False


class TestEvaluate:
    @pytest.mark.parametrize("record", [None, _record(None)])
    def test_unauthenticated(self, record) -> None:
        decision = gate.evaluate(record, "admin")
        assert decision.granted is False
        assert decision.reason == gate.UNAUTHENTICATED

    def test_forbidden_is_distinct_from_unauthenticated(self) -> None:
        decision = gate.evaluate(_record("user"), "admin")
        assert decision.granted is False
        assert decision.reason == gate.FORBIDDEN

    def test_login_only_requirement(self) -> None:
        assert gate.evaluate(_record("user")) == gate.GRANTED
        assert gate.evaluate(_record("admin")) == gate.GRANTED

    def test_admin_granted(self) -> None:
        decision = gate.evaluate(_record("admin"), "admin")
        assert decision.granted is True
        assert decision.reason is None
