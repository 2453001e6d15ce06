"""Unit tests for the closed claim sets."""

from __future__ import annotations

import pytest
from silentauth.services._shared.claims import (
    CLAIMS_BY_PURPOSE,
    AccessClaims,
    AntiForgeryClaims,
    AntiForgeryScope,
    RefreshClaims,
    TokenPurpose,
)


def _access_payload(**overrides):
    payload = {
        "typ": "access",
        "sub": "p-1",
        "sid": "s-1",
        "roles": ["user"],
        "jti": "j-1",
        "iat": 100,
        "exp": 200,
        "iss": "silentauth",
        "aud": "silentauth-api",
    }
    payload.update(overrides)
    return payload


def test_access_payload_carries_discriminator():
    claims = AccessClaims(sub="p", sid="s", roles=("user", "admin"), jti="j", iat=1, exp=2)

    payload = claims.to_payload()

    assert payload["typ"] == TokenPurpose.ACCESS.value
    assert payload["roles"] == ["user", "admin"]
    assert "nbf" not in payload


def test_access_from_payload_ignores_envelope_claims():
    claims = AccessClaims.from_payload(_access_payload(nbf=150))

    assert claims.roles == ("user",)
    assert claims.nbf == 150


@pytest.mark.parametrize(
    "overrides",
    [
        {"sub": ""},
        {"sid": 5},
        {"roles": "user"},
        {"roles": ["user", 3]},
        {"iat": "100"},
        {"exp": True},
        {"scope": "anon"},
    ],
)
def test_access_from_payload_rejects_bad_shapes(overrides):
    with pytest.raises(ValueError):
        AccessClaims.from_payload(_access_payload(**overrides))


def test_refresh_rejects_access_only_claims():
    with pytest.raises(ValueError):
        RefreshClaims.from_payload(_access_payload(typ="refresh"))


def test_authenticated_anti_forgery_requires_sid():
    with pytest.raises(ValueError):
        AntiForgeryClaims(scope=AntiForgeryScope.AUTHENTICATED, jti="j", iat=1, exp=2)
    with pytest.raises(ValueError):
        AntiForgeryClaims(scope=AntiForgeryScope.ANON, sid="s", jti="j", iat=1, exp=2)


def test_anti_forgery_rejects_unknown_scope():
    with pytest.raises(ValueError):
        AntiForgeryClaims.from_payload({"typ": "csrf", "scope": "admin", "jti": "j", "iat": 1, "exp": 2})


def test_claims_registry_covers_every_purpose():
    assert set(CLAIMS_BY_PURPOSE) == set(TokenPurpose)
    assert all(cls.purpose is purpose for purpose, cls in CLAIMS_BY_PURPOSE.items())
