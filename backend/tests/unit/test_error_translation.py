"""Unit tests mapping service errors onto HTTP problems."""

from __future__ import annotations

import pytest
from silentauth.core import errors as api_errors
from silentauth.services._shared.base import BaseService
from silentauth.services._shared.errors import (
    AccessDeniedError,
    AlreadyConsumedError,
    AntiForgeryError,
    AuthErrorKind,
    ConflictError,
    CredentialInvalidError,
    InsufficientRoleError,
    NotFoundError,
    SessionCompromisedError,
    SessionRevokedError,
)


@pytest.fixture()
def translate(app):
    with app.test_request_context("/api/v1/me"):
        yield BaseService().translate_exceptions


def test_expired_access_carries_renewal_marker(translate):
    err = translate(AccessDeniedError(AuthErrorKind.TOKEN_EXPIRED, renewable=True))

    assert isinstance(err, api_errors.Unauthorized)
    assert err.code == "token_expired"
    assert err.headers["X-Token-Renewal"] == "refresh"
    assert "WWW-Authenticate" in err.headers


@pytest.mark.parametrize(
    "kind",
    [AuthErrorKind.TOKEN_BAD_SIGNATURE, AuthErrorKind.TOKEN_MISSING, AuthErrorKind.TOKEN_WRONG_AUDIENCE],
)
def test_other_access_failures_are_not_renewable(translate, kind):
    err = translate(AccessDeniedError(kind))

    assert err.status_code == 401
    assert err.code == kind.value
    assert err.headers == {}


@pytest.mark.parametrize(
    "exc, status, code",
    [
        (CredentialInvalidError(), 401, "credential_invalid"),
        (SessionCompromisedError(), 401, "session_compromised"),
        (SessionRevokedError(), 401, "session_revoked"),
        (AlreadyConsumedError(), 401, "already_consumed"),
        (AntiForgeryError(), 403, "anti_forgery_invalid"),
        (InsufficientRoleError(), 403, "insufficient_role"),
        (NotFoundError("Session", "s1"), 404, "not_found"),
        (ConflictError("Principal", "email already registered"), 409, "conflict"),
    ],
)
def test_service_errors_map_to_problems(translate, exc, status, code):
    err = translate(exc)

    assert err.status_code == status
    assert err.code == code


def test_unrelated_exceptions_pass_through(translate):
    original = KeyError("x")

    assert translate(original) is original


def test_problem_body_shape(app):
    with app.test_request_context("/api/v1/auth/token/refresh", headers={"X-Request-Id": "req-1"}):
        problem = api_errors.Unauthorized("Session has been revoked", code="session_revoked").to_problem()

    assert problem["status"] == 401
    assert problem["code"] == "session_revoked"
    assert problem["instance"] == "/api/v1/auth/token/refresh"
    assert problem["request_id"] == "req-1"
