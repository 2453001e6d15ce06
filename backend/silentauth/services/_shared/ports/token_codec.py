from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Protocol

from silentauth.services._shared.claims import Claims, ClaimsT

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware UTC now."""
    return datetime.now(UTC)


class TokenCodec(Protocol):
    """
    Port for signing and verifying purpose-tagged tokens.

    Implementations are pure given their keys: ``verify`` raises
    :class:`~silentauth.services._shared.errors.TokenVerificationError`
    with the kind of the first failing check.
    """

    def sign(self, claims: Claims) -> str: ...

    def verify(
        self,
        token: str,
        expected: type[ClaimsT],
        *,
        now: datetime | None = None,
        allow_expired: bool = False,
    ) -> ClaimsT: ...

    def jwks(self) -> dict[str, Any]: ...
