from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from enum import Enum, auto
from typing import Protocol
from uuid import uuid4

from silentauth.services._shared.errors import NotFoundError, SessionRevokedError


class ConsumeResult(Enum):
    """Outcome of an atomic refresh-token consumption attempt."""

    OK = auto()
    NOT_FOUND = auto()
    EXPIRED = auto()
    REVOKED = auto()
    REUSED = auto()
    ALREADY_CONSUMED = auto()


class RefreshTokenStatus(str, Enum):
    """Lifecycle of a refresh token record.

    ``current`` -> ``consumed`` (exchange in progress) -> ``rotated``
    (successor recorded). ``revoked`` is set when the session is revoked while
    the token is still current.
    """

    CURRENT = "current"
    CONSUMED = "consumed"
    ROTATED = "rotated"
    REVOKED = "revoked"


class RevocationReason(str, Enum):
    LOGOUT = "logout"
    REUSE_DETECTED = "reuse_detected"
    ADMIN = "admin"


@dataclass(frozen=True, slots=True)
class ConsumeOutcome:
    """
    Result of :meth:`SessionStore.consume_refresh_token`.

    :ivar result: Classification of the attempt.
    :ivar session_id: Owning session (``None`` when the token is unknown).
    :ivar principal_id: Owning principal (``None`` when the token is unknown).
    """

    result: ConsumeResult
    session_id: str | None = None
    principal_id: str | None = None

    @property
    def ok(self) -> bool:
        return self.result is ConsumeResult.OK


@dataclass(frozen=True, slots=True)
class SessionView:
    """
    Read-model for a session.

    :ivar session_id: Opaque session identifier.
    :ivar principal_id: Owner principal id.
    :ivar created_at: Creation time (UTC).
    :ivar current_refresh_jti: The single refresh token currently valid.
    :ivar revoked: Terminal flag; never cleared once set.
    :ivar revoked_reason: Why the session was revoked.
    """

    session_id: str
    principal_id: str
    created_at: datetime
    current_refresh_jti: str | None
    revoked: bool
    revoked_at: datetime | None = None
    revoked_reason: str | None = None


@dataclass(frozen=True, slots=True)
class RefreshTokenView:
    """Read-model for one step of a session's refresh-token lineage."""

    jti: str
    session_id: str
    issued_at: datetime
    expires_at: datetime
    status: RefreshTokenStatus
    replaced_by_jti: str | None = None


class SessionStore(Protocol):
    """
    Durable record of sessions and their refresh-token lineage.

    ``consume_refresh_token`` MUST be linearizable per token: of N concurrent
    attempts on the same current token exactly one returns ``OK``.
    """

    def new_id(self) -> str:
        """Generate an opaque random identifier (session id or refresh jti)."""
        return uuid4().hex

    def create_session(self, principal_id: str, *, now: datetime | None = None) -> str:
        """Create a live session and return its id."""

    def record_refresh_token(
        self,
        session_id: str,
        token_id: str,
        expires_at: datetime,
        *,
        now: datetime | None = None,
    ) -> None:
        """
        Make ``token_id`` the current refresh token of the session.

        The previously current token becomes ``rotated``. This MUST run
        *before* the signed refresh token is handed to the client.

        :raises SessionRevokedError: If the session is revoked.
        :raises NotFoundError: If the session does not exist.
        """

    def consume_refresh_token(self, token_id: str, *, now: datetime | None = None) -> ConsumeOutcome:
        """
        Atomically consume the current refresh token.

        Presenting a ``rotated`` token revokes the whole session in the same
        atomic step and returns ``REUSED``.
        """

    def revoke_session(self, session_id: str, reason: RevocationReason = RevocationReason.LOGOUT) -> bool:
        """Revoke a session (idempotent). :returns: True if the session exists."""

    def revoke_all_for_principal(
        self, principal_id: str, reason: RevocationReason = RevocationReason.LOGOUT
    ) -> int:
        """Revoke every live session of a principal. :returns: Sessions newly revoked."""

    def is_session_valid(self, session_id: str) -> bool:
        """Return ``True`` when the session exists and is not revoked."""

    def get_session(self, session_id: str) -> SessionView | None:
        """Fetch a session snapshot."""

    def get_refresh_token(self, token_id: str) -> RefreshTokenView | None:
        """Fetch a refresh token record snapshot."""

    def list_principal_sessions(self, principal_id: str) -> Iterable[SessionView]:
        """List every session of a principal, oldest first."""


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


class InMemorySessionStore(SessionStore):
    """
    In-process session store with atomic consumption.

    .. note::
       A single lock serializes all writes. Suitable for tests and
       single-process development only; multi-instance deployments need the
       Redis or SQL store.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, SessionView] = {}
        self._tokens: dict[str, RefreshTokenView] = {}
        self._by_principal: dict[str, list[str]] = {}
        self._lock = threading.Lock()

    # -------------------------- API ----------------------------

    def create_session(self, principal_id: str, *, now: datetime | None = None) -> str:
        session_id = self.new_id()
        with self._lock:
            self._sessions[session_id] = SessionView(
                session_id=session_id,
                principal_id=principal_id,
                created_at=_now(now),
                current_refresh_jti=None,
                revoked=False,
            )
            self._by_principal.setdefault(principal_id, []).append(session_id)
        return session_id

    def record_refresh_token(
        self,
        session_id: str,
        token_id: str,
        expires_at: datetime,
        *,
        now: datetime | None = None,
    ) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise NotFoundError("Session", session_id)
            if session.revoked:
                raise SessionRevokedError()

            previous = session.current_refresh_jti
            if previous is not None and previous in self._tokens:
                self._tokens[previous] = replace(
                    self._tokens[previous],
                    status=RefreshTokenStatus.ROTATED,
                    replaced_by_jti=token_id,
                )
            self._tokens[token_id] = RefreshTokenView(
                jti=token_id,
                session_id=session_id,
                issued_at=_now(now),
                expires_at=expires_at,
                status=RefreshTokenStatus.CURRENT,
            )
            self._sessions[session_id] = replace(session, current_refresh_jti=token_id)

    def consume_refresh_token(self, token_id: str, *, now: datetime | None = None) -> ConsumeOutcome:
        with self._lock:
            token = self._tokens.get(token_id)
            if token is None:
                return ConsumeOutcome(ConsumeResult.NOT_FOUND)
            session = self._sessions[token.session_id]
            outcome = ConsumeOutcome(
                ConsumeResult.OK, session_id=session.session_id, principal_id=session.principal_id
            )

            if token.expires_at <= _now(now):
                return replace(outcome, result=ConsumeResult.EXPIRED)
            if session.revoked or token.status is RefreshTokenStatus.REVOKED:
                return replace(outcome, result=ConsumeResult.REVOKED)
            if (
                token.status is RefreshTokenStatus.ROTATED
                or session.current_refresh_jti != token_id
            ):
                self._revoke_locked(session.session_id, RevocationReason.REUSE_DETECTED)
                return replace(outcome, result=ConsumeResult.REUSED)
            if token.status is RefreshTokenStatus.CONSUMED:
                return replace(outcome, result=ConsumeResult.ALREADY_CONSUMED)

            self._tokens[token_id] = replace(token, status=RefreshTokenStatus.CONSUMED)
            return outcome

    def revoke_session(self, session_id: str, reason: RevocationReason = RevocationReason.LOGOUT) -> bool:
        with self._lock:
            if session_id not in self._sessions:
                return False
            self._revoke_locked(session_id, reason)
            return True

    def revoke_all_for_principal(
        self, principal_id: str, reason: RevocationReason = RevocationReason.LOGOUT
    ) -> int:
        with self._lock:
            count = 0
            for session_id in self._by_principal.get(principal_id, []):
                if self._revoke_locked(session_id, reason):
                    count += 1
            return count

    def is_session_valid(self, session_id: str) -> bool:
        session = self._sessions.get(session_id)
        return session is not None and not session.revoked

    def get_session(self, session_id: str) -> SessionView | None:
        return self._sessions.get(session_id)

    def get_refresh_token(self, token_id: str) -> RefreshTokenView | None:
        return self._tokens.get(token_id)

    def list_principal_sessions(self, principal_id: str) -> list[SessionView]:
        ids = list(self._by_principal.get(principal_id, []))
        return sorted(
            (self._sessions[sid] for sid in ids if sid in self._sessions),
            key=lambda s: s.created_at,
        )

    # ------------------------- helpers -------------------------

    def _revoke_locked(self, session_id: str, reason: RevocationReason) -> bool:
        """Revoke under the held lock. :returns: True if newly revoked."""
        session = self._sessions[session_id]
        if session.revoked:
            return False
        self._sessions[session_id] = replace(
            session,
            revoked=True,
            revoked_at=datetime.now(UTC),
            revoked_reason=reason.value,
        )
        current = session.current_refresh_jti
        if current is not None and current in self._tokens:
            token = self._tokens[current]
            if token.status in (RefreshTokenStatus.CURRENT, RefreshTokenStatus.CONSUMED):
                self._tokens[current] = replace(token, status=RefreshTokenStatus.REVOKED)
        return True
