"""Unit tests for the session and refresh-token repositories."""

from datetime import timedelta

import pytest
from silentauth.models import AuthSession, RefreshTokenRecord
from silentauth.repositories import AuthSessionRepository, RefreshTokenRepository

from tests.factories.principal import PrincipalFactory
from tests.helpers.clock import T0


@pytest.fixture()
def principal_id(session, factories):
    p = PrincipalFactory()
    session.commit()
    return p.id


def _session(session, sid, principal_id, *, created_at=T0, revoked=False):
    row = AuthSession(id=sid, principal_id=principal_id, created_at=created_at, revoked=revoked)
    session.add(row)
    return row


def _token(session, jti, sid, *, status="current"):
    row = RefreshTokenRecord(
        jti=jti,
        session_id=sid,
        issued_at=T0,
        expires_at=T0 + timedelta(days=1),
        status=status,
    )
    session.add(row)
    return row


class TestAuthSessionRepository:
    @pytest.fixture()
    def repo(self):
        return AuthSessionRepository()

    def test_list_for_principal_oldest_first(self, repo, session, principal_id):
        _session(session, "s-late", principal_id, created_at=T0 + timedelta(hours=1))
        _session(session, "s-early", principal_id, created_at=T0)
        session.commit()

        assert [s.id for s in repo.list_for_principal(principal_id)] == ["s-early", "s-late"]

    def test_live_ids_skip_revoked(self, repo, session, principal_id):
        _session(session, "s-live", principal_id)
        _session(session, "s-dead", principal_id, revoked=True)
        session.commit()

        assert repo.live_ids_for_principal(principal_id) == ["s-live"]

    def test_mark_revoked_flips_once(self, repo, session, principal_id):
        _session(session, "s-1", principal_id)
        session.commit()

        assert repo.mark_revoked("s-1", reason="logout", when=T0) is True
        assert repo.mark_revoked("s-1", reason="admin", when=T0) is False
        session.commit()

        row = repo.get("s-1")
        session.refresh(row)
        assert row.revoked is True
        assert row.revoked_reason == "logout"

    def test_mark_revoked_unknown_session(self, repo, session):
        assert repo.mark_revoked("missing", reason="logout", when=T0) is False


class TestRefreshTokenRepository:
    @pytest.fixture()
    def repo(self):
        return RefreshTokenRepository()

    def test_get_uses_jti_as_key(self, repo, session, principal_id):
        _session(session, "s-1", principal_id)
        _token(session, "rt-1", "s-1")
        session.commit()

        assert repo.get("rt-1").session_id == "s-1"

    def test_compare_and_set_single_winner(self, repo, session, principal_id):
        _session(session, "s-1", principal_id)
        _token(session, "rt-1", "s-1")
        session.commit()

        assert repo.compare_and_set_status("rt-1", expected=["current"], new="consumed") is True
        assert repo.compare_and_set_status("rt-1", expected=["current"], new="consumed") is False
        session.commit()

        assert repo.get_for_update("rt-1").status == "consumed"

    def test_compare_and_set_records_successor(self, repo, session, principal_id):
        _session(session, "s-1", principal_id)
        _token(session, "rt-1", "s-1", status="consumed")
        session.commit()

        assert repo.compare_and_set_status(
            "rt-1", expected=["current", "consumed"], new="rotated", replaced_by="rt-2"
        )
        session.commit()

        row = repo.get_for_update("rt-1")
        assert row.status == "rotated"
        assert row.replaced_by_jti == "rt-2"
