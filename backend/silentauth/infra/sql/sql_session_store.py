"""SQLAlchemy-backed session store.

Each operation runs in its own :class:`SQLAlchemyUnitOfWork`. Consumption is
decided by a compare-and-swap ``UPDATE ... WHERE status = 'current'``: on any
database, of N concurrent consumers exactly one sees a row count of 1.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

from silentauth.models.auth_session import AuthSession, RefreshTokenRecord
from silentauth.models.base import as_utc
from silentauth.services._shared.errors import NotFoundError, SessionRevokedError
from silentauth.services._shared.ports.session_store import (
    ConsumeOutcome,
    ConsumeResult,
    RefreshTokenStatus,
    RefreshTokenView,
    RevocationReason,
    SessionStore,
    SessionView,
)
from silentauth.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

LIVE_STATUSES = (RefreshTokenStatus.CURRENT.value, RefreshTokenStatus.CONSUMED.value)
# Upper bound on re-classification after losing a CAS; each lost round means
# another writer made progress.
MAX_CAS_ROUNDS = 5


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def _session_view(row: AuthSession) -> SessionView:
    return SessionView(
        session_id=row.id,
        principal_id=row.principal_id,
        created_at=as_utc(row.created_at),  # type: ignore[arg-type]
        current_refresh_jti=row.current_refresh_jti,
        revoked=bool(row.revoked),
        revoked_at=as_utc(row.revoked_at),
        revoked_reason=row.revoked_reason,
    )


def _token_view(row: RefreshTokenRecord) -> RefreshTokenView:
    return RefreshTokenView(
        jti=row.jti,
        session_id=row.session_id,
        issued_at=as_utc(row.issued_at),  # type: ignore[arg-type]
        expires_at=as_utc(row.expires_at),  # type: ignore[arg-type]
        status=RefreshTokenStatus(row.status),
        replaced_by_jti=row.replaced_by_jti,
    )


class SqlSessionStore(SessionStore):
    """
    Session store persisted in ``auth_sessions`` / ``refresh_tokens``.

    :param uow_factory: Builds the unit of work for each operation. Defaults to
        the Flask-scoped session; pass a factory bound to its own
        ``sessionmaker`` to use the store outside a request.
    """

    def __init__(self, uow_factory: Callable[[], SQLAlchemyUnitOfWork] = SQLAlchemyUnitOfWork) -> None:
        self._uow_factory = uow_factory

    # -------------------------- API ----------------------------

    def create_session(self, principal_id: str, *, now: datetime | None = None) -> str:
        session_id = self.new_id()
        with self._uow_factory() as uow:
            uow.sessions.add(
                AuthSession(
                    id=session_id,
                    principal_id=principal_id,
                    created_at=_now(now),
                    revoked=False,
                )
            )
        return session_id

    def record_refresh_token(
        self,
        session_id: str,
        token_id: str,
        expires_at: datetime,
        *,
        now: datetime | None = None,
    ) -> None:
        with self._uow_factory() as uow:
            session = uow.sessions.get_for_update(session_id)
            if session is None:
                raise NotFoundError("Session", session_id)
            if session.revoked:
                raise SessionRevokedError()

            previous = session.current_refresh_jti
            if previous is not None:
                uow.refresh_tokens.compare_and_set_status(
                    previous,
                    expected=LIVE_STATUSES,
                    new=RefreshTokenStatus.ROTATED.value,
                    replaced_by=token_id,
                )
            uow.refresh_tokens.add(
                RefreshTokenRecord(
                    jti=token_id,
                    session_id=session_id,
                    issued_at=_now(now),
                    expires_at=expires_at,
                    status=RefreshTokenStatus.CURRENT.value,
                )
            )
            session.current_refresh_jti = token_id
            uow.sessions.flush()

    def consume_refresh_token(self, token_id: str, *, now: datetime | None = None) -> ConsumeOutcome:
        current_time = _now(now)
        for _ in range(MAX_CAS_ROUNDS):
            with self._uow_factory() as uow:
                token = uow.refresh_tokens.get_for_update(token_id)
                if token is None:
                    return ConsumeOutcome(ConsumeResult.NOT_FOUND)
                session = uow.sessions.get_for_update(token.session_id)
                if session is None:
                    return ConsumeOutcome(ConsumeResult.NOT_FOUND)

                def outcome(result: ConsumeResult) -> ConsumeOutcome:
                    return ConsumeOutcome(result, session_id=session.id, principal_id=session.principal_id)

                if as_utc(token.expires_at) <= current_time:  # type: ignore[operator]
                    return outcome(ConsumeResult.EXPIRED)
                if session.revoked or token.status == RefreshTokenStatus.REVOKED.value:
                    return outcome(ConsumeResult.REVOKED)
                if (
                    token.status == RefreshTokenStatus.ROTATED.value
                    or session.current_refresh_jti != token_id
                ):
                    self._revoke_in(uow, session, RevocationReason.REUSE_DETECTED)
                    return outcome(ConsumeResult.REUSED)
                if token.status == RefreshTokenStatus.CONSUMED.value:
                    return outcome(ConsumeResult.ALREADY_CONSUMED)

                won = uow.refresh_tokens.compare_and_set_status(
                    token_id,
                    expected=(RefreshTokenStatus.CURRENT.value,),
                    new=RefreshTokenStatus.CONSUMED.value,
                )
                if won:
                    return outcome(ConsumeResult.OK)
            # Lost the CAS: another writer changed the row; classify again.
        return ConsumeOutcome(ConsumeResult.ALREADY_CONSUMED)

    def revoke_session(self, session_id: str, reason: RevocationReason = RevocationReason.LOGOUT) -> bool:
        with self._uow_factory() as uow:
            session = uow.sessions.get_for_update(session_id)
            if session is None:
                return False
            self._revoke_in(uow, session, reason)
            return True

    def revoke_all_for_principal(
        self, principal_id: str, reason: RevocationReason = RevocationReason.LOGOUT
    ) -> int:
        with self._uow_factory() as uow:
            count = 0
            for session_id in uow.sessions.live_ids_for_principal(principal_id):
                session = uow.sessions.get_for_update(session_id)
                if session is not None and self._revoke_in(uow, session, reason):
                    count += 1
            return count

    def is_session_valid(self, session_id: str) -> bool:
        with self._uow_factory() as uow:
            session = uow.sessions.get(session_id)
            return session is not None and not session.revoked

    def get_session(self, session_id: str) -> SessionView | None:
        with self._uow_factory() as uow:
            session = uow.sessions.get(session_id)
            return _session_view(session) if session is not None else None

    def get_refresh_token(self, token_id: str) -> RefreshTokenView | None:
        with self._uow_factory() as uow:
            token = uow.refresh_tokens.get(token_id)
            return _token_view(token) if token is not None else None

    def list_principal_sessions(self, principal_id: str) -> list[SessionView]:
        with self._uow_factory() as uow:
            return [_session_view(row) for row in uow.sessions.list_for_principal(principal_id)]

    # ------------------------- helpers -------------------------

    @staticmethod
    def _revoke_in(uow: SQLAlchemyUnitOfWork, session: AuthSession, reason: RevocationReason) -> bool:
        """Revoke inside an open unit of work. :returns: True if newly revoked."""
        changed = uow.sessions.mark_revoked(session.id, reason=reason.value, when=datetime.now(UTC))
        if changed and session.current_refresh_jti is not None:
            uow.refresh_tokens.compare_and_set_status(
                session.current_refresh_jti,
                expected=LIVE_STATUSES,
                new=RefreshTokenStatus.REVOKED.value,
            )
        return changed
