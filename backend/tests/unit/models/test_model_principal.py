"""Tests for the Principal and FederatedIdentityLink models."""

from __future__ import annotations

import pytest
from silentauth.models import FederatedIdentityLink, Principal
from sqlalchemy.exc import IntegrityError


class TestPrincipal:
    def test_password_hashing(self, session):
        p = Principal(email="Test@Example.com")
        p.password = "secret123"
        session.add(p)
        session.commit()
        assert p.verify_password("secret123") is True
        assert p.verify_password("wrong") is False

    def test_password_is_write_only(self):
        p = Principal(email="a@example.com")
        p.password = "x"
        with pytest.raises(AttributeError):
            _ = p.password

    def test_federated_only_principal_never_verifies(self):
        p = Principal(email="fed@example.com")
        assert p.password_hash is None
        assert p.verify_password("") is False
        assert p.verify_password("anything") is False

    def test_email_normalized_and_unique(self, session):
        p1 = Principal(email="  Alice@Example.com ")
        session.add(p1)
        session.commit()
        assert p1.email == "alice@example.com"

        session.add(Principal(email="alice@example.com"))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    @pytest.mark.parametrize("email", ["", "no-at-sign", "user@nodot"])
    def test_rejects_invalid_email(self, email):
        with pytest.raises(ValueError):
            Principal(email=email)

    def test_defaults(self, session):
        p = Principal(email="defaults@example.com")
        session.add(p)
        session.commit()
        assert p.roles == ["user"]
        assert p.enabled is True
        assert len(p.id) == 36

    def test_roles_are_deduplicated(self):
        p = Principal(email="r@example.com", roles=["admin", " admin", "user"])
        assert p.roles == ["admin", "user"]

    def test_blank_role_rejected(self):
        with pytest.raises(ValueError):
            Principal(email="r@example.com", roles=["user", "  "])


class TestFederatedIdentityLink:
    def test_provider_subject_unique(self, session):
        p = Principal(email="linked@example.com")
        session.add(p)
        session.flush()
        session.add(FederatedIdentityLink(provider="acme", subject="s-1", principal_id=p.id))
        session.commit()

        session.add(FederatedIdentityLink(provider="acme", subject="s-1", principal_id=p.id))
        with pytest.raises(IntegrityError):
            session.commit()
        session.rollback()

    def test_same_subject_different_provider_allowed(self, session):
        p = Principal(email="multi@example.com")
        session.add(p)
        session.flush()
        session.add_all(
            [
                FederatedIdentityLink(provider="acme", subject="s-2", principal_id=p.id),
                FederatedIdentityLink(provider="other", subject="s-2", principal_id=p.id),
            ]
        )
        session.commit()
        assert {link.provider for link in p.identity_links} == {"acme", "other"}
