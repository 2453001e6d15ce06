"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and should never import or depend
on Flask or HTTP directly. They are the typed outcomes of the credential,
issuance, anti-forgery and guard services.

The translation to HTTP responses (RFC 7807) is handled by
``BaseService.translate_exceptions()`` at the API boundary.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    :param exc: The exception raised by SQLAlchemy during flush/commit.
    :param constraint_name: Constraint to match (e.g. ``uq_principals_email``).
    :returns: ``True`` if the IntegrityError matches the given constraint.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    return constraint_name.lower() in message


class AuthErrorKind(str, Enum):
    """Stable, machine-readable failure kinds.

    The values double as the ``code`` field of problem responses.
    """

    CREDENTIAL_INVALID = "credential_invalid"
    TOKEN_MISSING = "token_missing"
    TOKEN_MALFORMED = "token_malformed"
    TOKEN_BAD_SIGNATURE = "token_bad_signature"
    TOKEN_EXPIRED = "token_expired"
    TOKEN_NOT_YET_VALID = "token_not_yet_valid"
    TOKEN_WRONG_ISSUER = "token_wrong_issuer"
    TOKEN_WRONG_AUDIENCE = "token_wrong_audience"
    REFRESH_INVALID = "refresh_invalid"
    SESSION_REVOKED = "session_revoked"
    ALREADY_CONSUMED = "already_consumed"
    SESSION_COMPROMISED = "session_compromised"
    ANTI_FORGERY_INVALID = "anti_forgery_invalid"
    INSUFFICIENT_ROLE = "insufficient_role"


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - The API layer translates them to ``APIError`` via ``BaseService``.
    """

    pass


class AuthError(ServiceError):
    """Base class for authentication and token failures carrying a kind."""

    kind: AuthErrorKind = AuthErrorKind.CREDENTIAL_INVALID
    default_message = "Authentication failed"

    def __init__(self, message: str | None = None, *, kind: AuthErrorKind | None = None) -> None:
        if kind is not None:
            self.kind = kind
        super().__init__(message or self.default_message)


# --------------------------------------------------------------------------- #
# Authentication / token errors
# --------------------------------------------------------------------------- #


class CredentialInvalidError(AuthError):
    """Wrong password, unknown principal or unverifiable federated assertion.

    The message is always the same so callers cannot enumerate accounts.
    """

    kind = AuthErrorKind.CREDENTIAL_INVALID

    def __init__(self) -> None:
        super().__init__("Authentication failed")


class TokenVerificationError(AuthError):
    """A token failed one of the ordered verification checks."""

    default_message = "Token rejected"

    def __init__(self, kind: AuthErrorKind, message: str | None = None) -> None:
        super().__init__(message, kind=kind)


class AccessDeniedError(AuthError):
    """The resource guard rejected an inbound access token.

    :ivar renewable: ``True`` only for an expired access token, in which case
        the caller may run the renewal protocol.
    """

    default_message = "Access token rejected"

    def __init__(self, kind: AuthErrorKind, *, renewable: bool = False) -> None:
        super().__init__(kind=kind)
        self.renewable = renewable


class RefreshInvalidError(AuthError):
    """Refresh token expired, revoked, unknown or otherwise unusable."""

    kind = AuthErrorKind.REFRESH_INVALID
    default_message = "Refresh token is no longer valid. Please sign in."


class SessionRevokedError(RefreshInvalidError):
    """The session behind the refresh token has been revoked."""

    kind = AuthErrorKind.SESSION_REVOKED
    default_message = "Session has been revoked. Please sign in."


class AlreadyConsumedError(RefreshInvalidError):
    """Another request rotated this refresh token first."""

    kind = AuthErrorKind.ALREADY_CONSUMED
    default_message = "Refresh token already used. Please sign in."


class SessionCompromisedError(AuthError):
    """A rotated refresh token was presented again; the session is revoked."""

    kind = AuthErrorKind.SESSION_COMPROMISED
    default_message = "Refresh token reuse detected. Please sign in again."


class AntiForgeryError(AuthError):
    """Missing, invalid or mismatched anti-forgery token."""

    kind = AuthErrorKind.ANTI_FORGERY_INVALID
    default_message = "Anti-forgery token missing or invalid"


class InsufficientRoleError(AuthError):
    """Authenticated, but the principal lacks a required authority."""

    kind = AuthErrorKind.INSUFFICIENT_ROLE
    default_message = "Insufficient role"


# --------------------------------------------------------------------------- #
# Persistence errors
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found in the repository.

    :param entity: Entity name (e.g., "Principal").
    :type entity: str
    :param key: Identifier or search key.
    :type key: str | int
    """

    entity: str
    key: str | int

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., "Principal").
    :type entity: str
    :param detail: Short human-readable explanation.
    :type detail: str
    """

    entity: str
    detail: str

    def __str__(self) -> str:  # pragma: no cover
        return f"Conflict on {self.entity}: {self.detail}"
