"""Unit tests for auth/sessions.py -- SessionManager state machine.

Covers:
- issue() creates an anonymous, resolvable session
- authenticate() snapshots identity and restarts the expiry window
- authenticate() on missing / destroyed / expired sessions
- expiry boundary: live at T+59min, gone at T+61min, exact instant still live
- destroy() is idempotent and permanent
- purge_expired() removes only expired rows
- raw session ids are never stored
"""

import pytest
from sqlalchemy import text

from auth.errors import SessionNotFoundError
from auth.models import Identity
from auth.sessions import SessionManager

ALICE = Identity(username="alice", email="alice@x.com", role="user")


class TestIssue:
    def test_issue_returns_anonymous_session(self, session_manager: SessionManager) -> None:
        sid = session_manager.issue()
        record = session_manager.resolve(sid)
        assert record is not None
        assert record.authenticated is False
        assert record.identity is None

    def test_issue_returns_unique_unguessable_ids(self, session_manager: SessionManager) -> None:
        ids = {session_manager.issue() for _ in range(20)}
        assert len(ids) == 20
        assert all(len(i) >= 40 for i in ids)

    def test_unknown_and_empty_ids_resolve_to_none(self, session_manager: SessionManager) -> None:
        assert session_manager.resolve("no-such-session") is None
        assert session_manager.resolve("") is None
        assert session_manager.resolve(None) is None

    def test_raw_id_is_not_persisted(self, session_manager: SessionManager) -> None:
        sid = session_manager.issue()
        with session_manager.engine.connect() as conn:
            keys = [row[0] for row in conn.execute(text("SELECT token_hash FROM sessions"))]
        assert sid not in keys
        assert len(keys) == 1 and len(keys[0]) == 64


class TestAuthenticate:
    def test_authenticate_snapshots_identity(self, session_manager: SessionManager) -> None:
        sid = session_manager.issue()
        session_manager.authenticate(sid, ALICE)
        record = session_manager.resolve(sid)
        assert record.authenticated is True
        assert record.identity == ALICE

    def test_authenticate_restarts_window(self, session_manager: SessionManager, clock) -> None:
        sid = session_manager.issue()
        clock.advance(30 * 60)
        session_manager.authenticate(sid, ALICE)
        assert session_manager.resolve(sid).expires_at == clock.now + 3600

    def test_authenticate_unknown_session(self, session_manager: SessionManager) -> None:
        with pytest.raises(SessionNotFoundError):
            session_manager.authenticate("missing", ALICE)

    def test_authenticate_destroyed_session(self, session_manager: SessionManager) -> None:
        sid = session_manager.issue()
        session_manager.destroy(sid)
        with pytest.raises(SessionNotFoundError):
            session_manager.authenticate(sid, ALICE)

    def test_authenticate_expired_session(self, session_manager: SessionManager, clock) -> None:
        sid = session_manager.issue()
        clock.advance(3601)
        with pytest.raises(SessionNotFoundError):
            session_manager.authenticate(sid, ALICE)


class TestExpiry:
    def _login_at_t(self, session_manager: SessionManager) -> str:
        sid = session_manager.issue()
        session_manager.authenticate(sid, ALICE)
        return sid

    def test_live_at_59_minutes(self, session_manager: SessionManager, clock) -> None:
        sid = self._login_at_t(session_manager)
        clock.advance(59 * 60)
        assert session_manager.resolve(sid) is not None

    def test_gone_at_61_minutes(self, session_manager: SessionManager, clock) -> None:
        sid = self._login_at_t(session_manager)
        clock.advance(61 * 60)
        assert session_manager.resolve(sid) is None

    def test_live_at_exact_expiry_instant(self, session_manager: SessionManager, clock) -> None:
        sid = self._login_at_t(session_manager)
        clock.advance(3600)
        assert session_manager.resolve(sid) is not None
        clock.advance(0.001)
        assert session_manager.resolve(sid) is None

    def test_expired_session_stays_gone(self, session_manager: SessionManager, clock) -> None:
        sid = self._login_at_t(session_manager)
        clock.advance(2 * 3600)
        assert session_manager.resolve(sid) is None
        clock.now -= 2 * 3600  # even if the clock went backwards, the row was deleted
        assert session_manager.resolve(sid) is None

    def test_no_renewal_on_activity(self, session_manager: SessionManager, clock) -> None:
        sid = self._login_at_t(session_manager)
        for _ in range(5):
            clock.advance(11 * 60)
            session_manager.resolve(sid)
        clock.advance(10 * 60)  # 65 minutes after login
        assert session_manager.resolve(sid) is None


class TestDestroy:
    def test_destroy_is_permanent(self, session_manager: SessionManager) -> None:
        sid = session_manager.issue()
        session_manager.authenticate(sid, ALICE)
        session_manager.destroy(sid)
        assert session_manager.resolve(sid) is None

    def test_destroy_is_idempotent(self, session_manager: SessionManager) -> None:
        sid = session_manager.issue()
        session_manager.destroy(sid)
        session_manager.destroy(sid)
        session_manager.destroy("never-existed")
        session_manager.destroy(None)
        assert session_manager.resolve(sid) is None

    def test_destroy_leaves_other_sessions(self, session_manager: SessionManager) -> None:
        keep = session_manager.issue()
        drop = session_manager.issue()
        session_manager.destroy(drop)
        assert session_manager.resolve(keep) is not None


class TestPurge:
    def test_purge_removes_only_expired(self, session_manager: SessionManager, clock) -> None:
        old = session_manager.issue()
        clock.advance(3000)
        fresh = session_manager.issue()
        clock.advance(700)  # old expired 100s ago, fresh has ~2900s left
        assert session_manager.purge_expired() == 1
        assert session_manager.resolve(fresh) is not None
        assert session_manager.resolve(old) is None

    def test_purge_with_nothing_expired(self, session_manager: SessionManager) -> None:
        session_manager.issue()
        assert session_manager.purge_expired() == 0


def test_sessions_visible_across_manager_instances(tmp_path, clock) -> None:
    """A second process pointed at the same database resolves the same session."""
    url = f"sqlite:///{tmp_path / 'sessions.db'}"
    secret = "shared-secret-key-with-at-least-32-chars"
    first = SessionManager(url, secret_key=secret, clock=clock)
    second = SessionManager(url, secret_key=secret, clock=clock)
    try:
        sid = first.issue()
        first.authenticate(sid, ALICE)
        assert second.resolve(sid).identity == ALICE
        second.destroy(sid)
        assert first.resolve(sid) is None
    finally:
        first.close()
        second.close()
