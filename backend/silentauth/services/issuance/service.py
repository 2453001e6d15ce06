# silentauth/services/issuance/service.py
from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import datetime

from silentauth.core.logger import log_event
from silentauth.services._shared.base import BaseService
from silentauth.services._shared.claims import AccessClaims, RefreshClaims, to_datetime
from silentauth.services._shared.errors import (
    AlreadyConsumedError,
    AntiForgeryError,
    CredentialInvalidError,
    RefreshInvalidError,
    SessionCompromisedError,
    SessionRevokedError,
    TokenVerificationError,
)
from silentauth.services._shared.ports.session_store import (
    ConsumeResult,
    RevocationReason,
    SessionStore,
    SessionView,
)
from silentauth.services._shared.ports.token_codec import Clock, TokenCodec, utc_now
from silentauth.services.anti_forgery.service import AntiForgeryService
from silentauth.services.credentials.dto import PrincipalOut
from silentauth.services.issuance.dto import AuthTokenConfig, TokenBundleOut

log = logging.getLogger(__name__)

PrincipalLookup = Callable[[str], PrincipalOut | None]


class TokenIssuanceService(BaseService):
    """
    Mint, rotate and revoke the token set of a session.

    Responsibilities
    ----------------
    * ``login``: open a session for a validated principal and issue the
      access, refresh and anti-forgery tokens.
    * ``refresh``: exchange a refresh token exactly once for a new bundle;
      presenting a rotated token again revokes the whole session.
    * ``logout`` / ``logout_all``: revoke one or every session of a principal.

    Notes
    -----
    - The refresh ``jti`` is recorded in the session store *before* the token
      is signed, so a signed refresh token always has a store record.
    - Access tokens are never checked against the store; they stay valid
      until ``exp`` even after logout.
    """

    def __init__(
        self,
        *,
        codec: TokenCodec,
        session_store: SessionStore,
        anti_forgery: AntiForgeryService,
        principal_lookup: PrincipalLookup,
        token_cfg: AuthTokenConfig | None = None,
        clock: Clock = utc_now,
    ) -> None:
        """
        :param codec: Signs and verifies tokens.
        :param session_store: Owns session and rotation state.
        :param anti_forgery: Issues the session-bound anti-forgery token.
        :param principal_lookup: Resolves a principal id at refresh time so
            role changes and disabling take effect on the next rotation.
        :param token_cfg: Token lifetimes.
        :param clock: Source of ``iat``.
        """
        super().__init__(clock=clock)
        self.codec = codec
        self.sessions = session_store
        self.anti_forgery = anti_forgery
        self.principal_lookup = principal_lookup
        self.cfg = token_cfg or AuthTokenConfig()

    # ------------------------------------------------------------------ #
    # Login
    # ------------------------------------------------------------------ #

    def login(self, principal: PrincipalOut) -> TokenBundleOut:
        """
        Open a new session and issue its first token bundle.

        :param principal: Principal already validated by the credential layer.
        :raises CredentialInvalidError: If the principal is disabled.
        """
        if not principal.enabled:
            raise CredentialInvalidError()

        now = self.now_utc()
        session_id = self.sessions.create_session(principal.id, now=now)
        bundle = self._issue(principal.id, session_id, principal.roles, now)
        log_event(
            log,
            "auth.login",
            message=f"auth.login principal_id={principal.id}",
            principal_id=principal.id,
            session_id=session_id,
        )
        return bundle

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    def refresh(self, refresh_token: str | None, *, anti_forgery_session_id: str | None = None) -> TokenBundleOut:
        """
        Rotate a refresh token.

        :param refresh_token: The presented refresh token.
        :param anti_forgery_session_id: Session of the echoed anti-forgery
            token; when given it must match the refresh token's session.
        :returns: A new bundle in the same session.
        :raises SessionCompromisedError: A rotated token was replayed; the
            session is now revoked.
        :raises AlreadyConsumedError: A concurrent refresh won the race.
        :raises SessionRevokedError: The session was logged out or revoked.
        :raises RefreshInvalidError: Unknown, expired or unverifiable token.
        :raises AntiForgeryError: The anti-forgery token belongs to another session.
        """
        if not refresh_token:
            raise RefreshInvalidError()

        now = self.now_utc()
        try:
            claims = self.codec.verify(refresh_token, RefreshClaims, now=now)
        except TokenVerificationError as exc:
            raise RefreshInvalidError() from exc

        if anti_forgery_session_id is not None and anti_forgery_session_id != claims.sid:
            raise AntiForgeryError()

        outcome = self.sessions.consume_refresh_token(claims.jti, now=now)
        result = outcome.result

        if result is ConsumeResult.REUSED:
            log_event(
                log,
                "security.refresh_reuse",
                level=logging.WARNING,
                message=f"security.refresh_reuse session_id={outcome.session_id}",
                session_id=outcome.session_id,
                principal_id=outcome.principal_id,
            )
            raise SessionCompromisedError()
        if result is ConsumeResult.ALREADY_CONSUMED:
            log_event(
                log,
                "security.refresh_race",
                message=f"security.refresh_race session_id={outcome.session_id}",
                session_id=outcome.session_id,
                principal_id=outcome.principal_id,
            )
            raise AlreadyConsumedError()
        if result is ConsumeResult.REVOKED:
            raise SessionRevokedError()
        if not outcome.ok:
            raise RefreshInvalidError()

        if outcome.session_id != claims.sid or outcome.principal_id != claims.sub:
            # store and token disagree about ownership
            self.sessions.revoke_session(claims.sid, RevocationReason.REUSE_DETECTED)
            raise RefreshInvalidError()

        principal = self.principal_lookup(claims.sub)
        if principal is None or not principal.enabled:
            self.sessions.revoke_session(claims.sid, RevocationReason.ADMIN)
            raise RefreshInvalidError()

        bundle = self._issue(principal.id, claims.sid, principal.roles, now)
        log_event(
            log,
            "auth.refresh",
            message=f"auth.refresh session_id={claims.sid}",
            principal_id=principal.id,
            session_id=claims.sid,
        )
        return bundle

    # ------------------------------------------------------------------ #
    # Logout
    # ------------------------------------------------------------------ #

    def logout(self, session_id: str) -> bool:
        """
        Revoke one session. Idempotent.

        :returns: ``True`` if the session exists.
        """
        existed = self.sessions.revoke_session(session_id, RevocationReason.LOGOUT)
        log_event(log, "auth.logout", message=f"auth.logout session_id={session_id}", session_id=session_id)
        return existed

    def logout_all(self, principal_id: str) -> int:
        """
        Revoke every session of ``principal_id``.

        :returns: Number of sessions newly revoked.
        """
        count = self.sessions.revoke_all_for_principal(principal_id, RevocationReason.LOGOUT)
        log_event(
            log,
            "auth.logout_all",
            message=f"auth.logout_all principal_id={principal_id} revoked={count}",
            principal_id=principal_id,
        )
        return count

    def list_sessions(self, principal_id: str, *, include_revoked: bool = False) -> list[SessionView]:
        sessions = list(self.sessions.list_principal_sessions(principal_id))
        if include_revoked:
            return sessions
        return [s for s in sessions if not s.revoked]

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _issue(self, principal_id: str, session_id: str, roles: Iterable[str], now: datetime) -> TokenBundleOut:
        iat = int(now.timestamp())
        access_exp = iat + int(self.cfg.access_ttl.total_seconds())
        refresh_exp = iat + int(self.cfg.refresh_ttl.total_seconds())

        refresh_jti = self.sessions.new_id()
        self.sessions.record_refresh_token(session_id, refresh_jti, to_datetime(refresh_exp), now=now)

        access = AccessClaims(
            sub=principal_id,
            sid=session_id,
            roles=tuple(roles),
            jti=self.sessions.new_id(),
            iat=iat,
            exp=access_exp,
        )
        refresh = RefreshClaims(sub=principal_id, sid=session_id, jti=refresh_jti, iat=iat, exp=refresh_exp)
        anti_forgery = self.anti_forgery.issue_for_session(session_id, now=now)

        return TokenBundleOut(
            access_token=self.codec.sign(access),
            refresh_token=self.codec.sign(refresh),
            anti_forgery_token=anti_forgery.token,
            session_id=session_id,
            principal_id=principal_id,
            access_expires_at=to_datetime(access_exp),
            refresh_expires_at=to_datetime(refresh_exp),
        )
