"""
Closed claim sets, one per token purpose.

Every token carries a ``typ`` discriminator. A verifier asked for an access
token only accepts a payload that parses into :class:`AccessClaims`; an
anti-forgery or refresh token presented in its place fails as malformed.

``iss`` and ``aud`` are envelope claims stamped and checked by the codec, so
they are not part of the dataclasses below.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar, TypeVar, Union

ENVELOPE_CLAIMS = frozenset({"typ", "iss", "aud"})


class TokenPurpose(str, Enum):
    """Discriminator stored in the ``typ`` claim."""

    ACCESS = "access"
    REFRESH = "refresh"
    ANTI_FORGERY = "csrf"


class AntiForgeryScope(str, Enum):
    """Whether an anti-forgery token is bound to a session."""

    ANON = "anon"
    AUTHENTICATED = "authenticated"


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise ValueError(f"claim '{key}' must be a non-empty string")
    return value


def _require_int(payload: Mapping[str, Any], key: str) -> int:
    value = payload.get(key)
    # bool is an int subclass; reject it explicitly
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"claim '{key}' must be an integer timestamp")
    return value


def _optional_int(payload: Mapping[str, Any], key: str) -> int | None:
    if key not in payload:
        return None
    return _require_int(payload, key)


def _reject_unknown(payload: Mapping[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(payload) - allowed - ENVELOPE_CLAIMS
    if unknown:
        raise ValueError(f"unexpected claims: {sorted(unknown)}")


def to_datetime(ts: int) -> datetime:
    """Convert an epoch-seconds claim into an aware UTC datetime."""
    return datetime.fromtimestamp(ts, tz=UTC)


@dataclass(frozen=True, slots=True)
class AccessClaims:
    """
    Short-lived proof of authentication.

    :ivar sub: Principal identifier.
    :ivar sid: Session identifier the token was issued under.
    :ivar roles: Authority strings.
    :ivar jti: Unique token identifier.
    :ivar iat: Issued-at (epoch seconds).
    :ivar exp: Expiry (epoch seconds); expired when ``exp <= now``.
    :ivar nbf: Optional not-before (epoch seconds).
    """

    purpose: ClassVar[TokenPurpose] = TokenPurpose.ACCESS
    FIELDS: ClassVar[frozenset[str]] = frozenset({"sub", "sid", "roles", "jti", "iat", "exp", "nbf"})

    sub: str
    sid: str
    roles: tuple[str, ...]
    jti: str
    iat: int
    exp: int
    nbf: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "typ": self.purpose.value,
            "sub": self.sub,
            "sid": self.sid,
            "roles": list(self.roles),
            "jti": self.jti,
            "iat": self.iat,
            "exp": self.exp,
        }
        if self.nbf is not None:
            payload["nbf"] = self.nbf
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> AccessClaims:
        _reject_unknown(payload, cls.FIELDS)
        roles = payload.get("roles")
        if not isinstance(roles, list) or not all(isinstance(r, str) for r in roles):
            raise ValueError("claim 'roles' must be a list of strings")
        return cls(
            sub=_require_str(payload, "sub"),
            sid=_require_str(payload, "sid"),
            roles=tuple(roles),
            jti=_require_str(payload, "jti"),
            iat=_require_int(payload, "iat"),
            exp=_require_int(payload, "exp"),
            nbf=_optional_int(payload, "nbf"),
        )


@dataclass(frozen=True, slots=True)
class RefreshClaims:
    """
    Long-lived, single-use credential for a new access token.

    The ``jti`` is generated by the session store, which owns rotation state.
    """

    purpose: ClassVar[TokenPurpose] = TokenPurpose.REFRESH
    FIELDS: ClassVar[frozenset[str]] = frozenset({"sub", "sid", "jti", "iat", "exp", "nbf"})

    sub: str
    sid: str
    jti: str
    iat: int
    exp: int
    nbf: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "typ": self.purpose.value,
            "sub": self.sub,
            "sid": self.sid,
            "jti": self.jti,
            "iat": self.iat,
            "exp": self.exp,
        }
        if self.nbf is not None:
            payload["nbf"] = self.nbf
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RefreshClaims:
        _reject_unknown(payload, cls.FIELDS)
        return cls(
            sub=_require_str(payload, "sub"),
            sid=_require_str(payload, "sid"),
            jti=_require_str(payload, "jti"),
            iat=_require_int(payload, "iat"),
            exp=_require_int(payload, "exp"),
            nbf=_optional_int(payload, "nbf"),
        )


@dataclass(frozen=True, slots=True)
class AntiForgeryClaims:
    """
    Request-scoping token echoed back on state-changing calls.

    ``sid`` is present exactly when ``scope`` is ``authenticated``.
    """

    purpose: ClassVar[TokenPurpose] = TokenPurpose.ANTI_FORGERY
    FIELDS: ClassVar[frozenset[str]] = frozenset({"scope", "sid", "jti", "iat", "exp", "nbf"})

    scope: AntiForgeryScope
    jti: str
    iat: int
    exp: int
    sid: str | None = None
    nbf: int | None = None

    def __post_init__(self) -> None:
        if (self.scope is AntiForgeryScope.AUTHENTICATED) != (self.sid is not None):
            raise ValueError("authenticated anti-forgery tokens require 'sid', anon ones forbid it")

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "typ": self.purpose.value,
            "scope": self.scope.value,
            "jti": self.jti,
            "iat": self.iat,
            "exp": self.exp,
        }
        if self.sid is not None:
            payload["sid"] = self.sid
        if self.nbf is not None:
            payload["nbf"] = self.nbf
        return payload

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> AntiForgeryClaims:
        _reject_unknown(payload, cls.FIELDS)
        try:
            scope = AntiForgeryScope(payload.get("scope"))
        except ValueError as exc:
            raise ValueError("claim 'scope' must be 'anon' or 'authenticated'") from exc
        return cls(
            scope=scope,
            sid=_require_str(payload, "sid") if "sid" in payload else None,
            jti=_require_str(payload, "jti"),
            iat=_require_int(payload, "iat"),
            exp=_require_int(payload, "exp"),
            nbf=_optional_int(payload, "nbf"),
        )


Claims = Union[AccessClaims, RefreshClaims, AntiForgeryClaims]
ClaimsT = TypeVar("ClaimsT", AccessClaims, RefreshClaims, AntiForgeryClaims)

CLAIMS_BY_PURPOSE: dict[TokenPurpose, type[Claims]] = {
    TokenPurpose.ACCESS: AccessClaims,
    TokenPurpose.REFRESH: RefreshClaims,
    TokenPurpose.ANTI_FORGERY: AntiForgeryClaims,
}
