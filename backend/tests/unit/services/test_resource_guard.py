"""Unit tests for the stateless ResourceGuard."""

from __future__ import annotations

from datetime import timedelta

import pytest
from silentauth.services._shared.claims import AccessClaims, RefreshClaims
from silentauth.services._shared.errors import AccessDeniedError, AuthErrorKind, InsufficientRoleError
from silentauth.services.guard import AccessContext, ResourceGuard

from tests.helpers.clock import AUDIENCE, ISSUER, T0

IAT = int(T0.timestamp())


@pytest.fixture()
def guard(codec, clock):
    return ResourceGuard(codec, clock=clock)


@pytest.fixture()
def access_token(codec):
    return codec.sign(
        AccessClaims(sub="alice", sid="session-1", roles=("user", "editor"), jti="a1", iat=IAT, exp=IAT + 900)
    )


def _denied(guard, token) -> AccessDeniedError:
    with pytest.raises(AccessDeniedError) as excinfo:
        guard.authenticate(token)
    return excinfo.value


def test_valid_token_yields_context(guard, access_token):
    ctx = guard.authenticate(access_token)

    assert ctx == AccessContext(
        principal_id="alice",
        session_id="session-1",
        roles=("user", "editor"),
        expires_at=T0 + timedelta(seconds=900),
        token_id="a1",
    )


@pytest.mark.parametrize("token", [None, ""])
def test_missing_token(guard, token):
    error = _denied(guard, token)

    assert error.kind is AuthErrorKind.TOKEN_MISSING
    assert error.renewable is False


def test_only_expiry_is_renewable(guard, access_token, clock):
    clock.advance(seconds=900)

    error = _denied(guard, access_token)

    assert error.kind is AuthErrorKind.TOKEN_EXPIRED
    assert error.renewable is True


def test_tampered_token_is_not_renewable(guard, access_token):
    header, payload, signature = access_token.split(".")
    first = "A" if signature[0] != "A" else "B"
    forged = ".".join([header, payload, first + signature[1:]])

    error = _denied(guard, forged)

    assert error.kind is AuthErrorKind.TOKEN_BAD_SIGNATURE
    assert error.renewable is False


def test_refresh_token_is_not_an_access_token(guard, codec):
    refresh = codec.sign(RefreshClaims(sub="alice", sid="s", jti="r1", iat=IAT, exp=IAT + 900))

    error = _denied(guard, refresh)

    assert error.kind is AuthErrorKind.TOKEN_MALFORMED
    assert error.renewable is False


def test_authorize_checks_every_role(guard, access_token):
    ctx = guard.authenticate(access_token)

    ResourceGuard.authorize(ctx, ["user"])
    ResourceGuard.authorize(ctx, ["user", "editor"])
    with pytest.raises(InsufficientRoleError):
        ResourceGuard.authorize(ctx, ["user", "admin"])


def test_guard_from_published_keys(codec, clock, access_token):
    downstream = ResourceGuard.from_jwks(codec.jwks(), issuer=ISSUER, audience=AUDIENCE, clock=clock)

    assert downstream.authenticate(access_token).principal_id == "alice"


def test_downstream_guard_with_other_audience_rejects(codec, clock, access_token):
    downstream = ResourceGuard.from_jwks(codec.jwks(), issuer=ISSUER, audience="billing-api", clock=clock)

    assert _denied(downstream, access_token).kind is AuthErrorKind.TOKEN_WRONG_AUDIENCE
