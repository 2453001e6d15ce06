# silentauth/services/anti_forgery/service.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import NoReturn

from silentauth.core.logger import log_event
from silentauth.services._shared.claims import AntiForgeryClaims, AntiForgeryScope, to_datetime
from silentauth.services._shared.errors import AntiForgeryError, TokenVerificationError
from silentauth.services._shared.ports.session_store import SessionStore
from silentauth.services._shared.ports.token_codec import Clock, TokenCodec, utc_now

log = logging.getLogger(__name__)


class AntiForgeryMode(str, Enum):
    """How much an authenticated anti-forgery token must prove.

    ``session_bound`` requires a valid signature *and* a live session;
    ``stateless`` accepts any token with a valid signature.
    """

    SESSION_BOUND = "session_bound"
    STATELESS = "stateless"


@dataclass(frozen=True, slots=True)
class AntiForgeryTokenOut:
    """
    Issued anti-forgery token.

    :param token: Signed token the client echoes in the anti-forgery header.
    :param scope: ``anon`` (pre-login) or ``authenticated`` (bound to a session).
    :param expires_at: Expiry (UTC).
    """

    token: str
    scope: AntiForgeryScope
    expires_at: datetime
    session_id: str | None = None


class AntiForgeryService:
    """
    Issue and validate signed anti-forgery tokens.

    Tokens are stateless JWS values of purpose ``csrf``: the server keeps no
    per-token record, and the echoed header proves the request came from a
    page that could read the token.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        session_store: SessionStore,
        mode: AntiForgeryMode | str = AntiForgeryMode.SESSION_BOUND,
        ttl: timedelta = timedelta(hours=8),
        clock: Clock = utc_now,
    ) -> None:
        self.codec = codec
        self.sessions = session_store
        self.mode = AntiForgeryMode(mode)
        self.ttl = ttl
        self.clock = clock

    # ------------------------------------------------------------------ #
    # Issue
    # ------------------------------------------------------------------ #

    def issue_anonymous(self, *, now: datetime | None = None) -> AntiForgeryTokenOut:
        """Issue an ``anon`` token for pre-login forms."""
        return self._issue(AntiForgeryScope.ANON, None, now)

    def issue_for_session(self, session_id: str, *, now: datetime | None = None) -> AntiForgeryTokenOut:
        """Issue an ``authenticated`` token bound to ``session_id``."""
        return self._issue(AntiForgeryScope.AUTHENTICATED, session_id, now)

    def _issue(self, scope: AntiForgeryScope, session_id: str | None, now: datetime | None) -> AntiForgeryTokenOut:
        iat = int((now or self.clock()).timestamp())
        exp = iat + int(self.ttl.total_seconds())
        claims = AntiForgeryClaims(
            scope=scope,
            sid=session_id,
            jti=self.sessions.new_id(),
            iat=iat,
            exp=exp,
        )
        return AntiForgeryTokenOut(
            token=self.codec.sign(claims),
            scope=scope,
            expires_at=to_datetime(exp),
            session_id=session_id,
        )

    # ------------------------------------------------------------------ #
    # Validate
    # ------------------------------------------------------------------ #

    def validate(
        self,
        token: str | None,
        *,
        require_session: bool,
        expected_session_id: str | None = None,
        check_liveness: bool | None = None,
        allow_expired: bool = False,
        now: datetime | None = None,
    ) -> AntiForgeryClaims:
        """
        Validate an echoed anti-forgery token.

        :param token: Header value; ``None`` or empty fails.
        :param require_session: Demand an ``authenticated`` token.
        :param expected_session_id: When given, the token's ``sid`` must match.
        :param check_liveness: Override the mode's liveness check. Logout
            passes ``False`` so it stays idempotent on a revoked session.
        :param allow_expired: Accept a token past its ``exp``. Refresh and
            logout pass ``True``; the refresh token bounds how long the
            session lives, and the signature and ``sid`` are still checked.
        :raises AntiForgeryError: On any failure.
        """
        if not token:
            self._reject("missing")
        try:
            claims = self.codec.verify(
                token, AntiForgeryClaims, now=now or self.clock(), allow_expired=allow_expired
            )
        except TokenVerificationError as exc:
            self._reject(exc.kind.value, cause=exc)

        if require_session and claims.scope is not AntiForgeryScope.AUTHENTICATED:
            self._reject("session_required")
        if expected_session_id is not None and claims.sid != expected_session_id:
            self._reject("session_mismatch", session_id=claims.sid)

        liveness = self.mode is AntiForgeryMode.SESSION_BOUND if check_liveness is None else check_liveness
        if liveness and claims.sid is not None and not self.sessions.is_session_valid(claims.sid):
            self._reject("session_not_live", session_id=claims.sid)
        return claims

    @staticmethod
    def _reject(kind: str, *, session_id: str | None = None, cause: Exception | None = None) -> NoReturn:
        log_event(
            log,
            "auth.anti_forgery_rejected",
            level=logging.WARNING,
            message=f"auth.anti_forgery_rejected kind={kind}",
            kind=kind,
            session_id=session_id,
        )
        raise AntiForgeryError() from cause
