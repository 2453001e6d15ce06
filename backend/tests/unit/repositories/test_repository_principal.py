"""Unit tests for PrincipalRepository and FederatedIdentityLinkRepository."""

import pytest
from silentauth.repositories import FederatedIdentityLinkRepository, PrincipalRepository

from tests.factories.principal import PrincipalFactory
from tests.helpers.clock import T0


class TestPrincipalRepository:
    @pytest.fixture()
    def repo(self):
        return PrincipalRepository()

    def test_get_by_email_is_case_insensitive(self, repo, session, factories):
        p = PrincipalFactory(email="alice@example.com")
        session.commit()

        fetched = repo.get_by_email("  ALICE@example.com")
        assert fetched is not None
        assert fetched.id == p.id
        assert repo.get_by_email("nobody@example.com") is None

    def test_exists_by_email(self, repo, session, factories):
        PrincipalFactory(email="bob@example.com")
        session.commit()

        assert repo.exists_by_email("Bob@Example.com")
        assert not repo.exists_by_email("nonexistent@example.com")

    def test_touch_last_login(self, repo, session, factories):
        p = PrincipalFactory()
        session.commit()
        assert p.last_login_at is None

        repo.touch_last_login(p.id, T0)
        session.commit()

        assert repo.get(p.id).last_login_at is not None

    def test_touch_last_login_unknown_principal(self, repo, session):
        with pytest.raises(ValueError):
            repo.touch_last_login("missing", T0)


class TestFederatedIdentityLinkRepository:
    @pytest.fixture()
    def repo(self):
        return FederatedIdentityLinkRepository()

    def test_link_and_resolve(self, repo, session, factories):
        p = PrincipalFactory(password=False)
        session.commit()

        repo.link(provider="acme", subject="sub-1", principal_id=p.id)
        session.commit()

        found = repo.get_by_provider_subject("acme", "sub-1")
        assert found is not None
        assert found.principal_id == p.id
        assert repo.get_by_provider_subject("other", "sub-1") is None
