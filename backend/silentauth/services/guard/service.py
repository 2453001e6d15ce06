"""Resource guard: stateless verification of inbound access tokens."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from silentauth.services._shared.claims import AccessClaims, to_datetime
from silentauth.services._shared.errors import (
    AccessDeniedError,
    AuthErrorKind,
    InsufficientRoleError,
    TokenVerificationError,
)
from silentauth.services._shared.ports.token_codec import Clock, TokenCodec, utc_now


@dataclass(frozen=True, slots=True)
class AccessContext:
    """
    Authenticated caller derived from a verified access token.

    :ivar principal_id: ``sub`` claim.
    :ivar session_id: ``sid`` claim.
    :ivar roles: Authority strings.
    :ivar expires_at: Token expiry (UTC).
    :ivar token_id: ``jti`` claim.
    """

    principal_id: str
    session_id: str
    roles: tuple[str, ...]
    expires_at: datetime
    token_id: str

    def has_roles(self, required: Iterable[str]) -> bool:
        return set(required).issubset(self.roles)


class ResourceGuard:
    """
    Verify access tokens without touching the session store.

    Any service holding the issuer's public keys can run this check, so a
    revoked session keeps working until its access token expires. Only an
    expired token is marked renewable.
    """

    def __init__(self, codec: TokenCodec, *, clock: Clock = utc_now) -> None:
        self.codec = codec
        self.clock = clock

    @classmethod
    def from_jwks(
        cls,
        jwks: Mapping[str, Any],
        *,
        issuer: str,
        audience: str,
        algorithms: Sequence[str] = ("RS256",),
        clock: Clock = utc_now,
    ) -> ResourceGuard:
        """
        Build a verification-only guard from a published key set.

        :param jwks: Document served at ``/.well-known/jwks.json``.
        """
        from silentauth.infra.jwt import JWTTokenCodec, KeyRing

        codec = JWTTokenCodec(
            KeyRing.from_jwks(jwks),
            issuer=issuer,
            audience=audience,
            algorithms=tuple(algorithms),
            clock=clock,
        )
        return cls(codec, clock=clock)

    def authenticate(self, token: str | None, *, now: datetime | None = None) -> AccessContext:
        """
        Verify an access token.

        :param token: Raw token from the cookie or ``Authorization`` header.
        :raises AccessDeniedError: With the verification kind; ``renewable``
            is set only when the token expired.
        """
        if not token:
            raise AccessDeniedError(AuthErrorKind.TOKEN_MISSING)
        try:
            claims = self.codec.verify(token, AccessClaims, now=now or self.clock())
        except TokenVerificationError as exc:
            raise AccessDeniedError(exc.kind, renewable=exc.kind is AuthErrorKind.TOKEN_EXPIRED) from exc

        return AccessContext(
            principal_id=claims.sub,
            session_id=claims.sid,
            roles=claims.roles,
            expires_at=to_datetime(claims.exp),
            token_id=claims.jti,
        )

    @staticmethod
    def authorize(ctx: AccessContext, required_roles: Iterable[str]) -> None:
        """:raises InsufficientRoleError: When ``ctx`` lacks any of ``required_roles``."""
        if not ctx.has_roles(required_roles):
            raise InsufficientRoleError()
