"""Repositories for sessions and refresh-token records.

The compare-and-swap helpers issue single ``UPDATE`` statements whose row
count tells the caller whether it won a race.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.orm import InstrumentedAttribute

from silentauth.models.auth_session import AuthSession, RefreshTokenRecord
from silentauth.repositories.base import BaseRepository


class AuthSessionRepository(BaseRepository[AuthSession]):
    """Persistence-only repository for :class:`AuthSession`."""

    model = AuthSession

    def _sortable_fields(self):
        return {"created_at": AuthSession.created_at}

    def _filterable_fields(self):
        return {
            "principal_id": AuthSession.principal_id,
            "revoked": AuthSession.revoked,
        }

    def list_for_principal(self, principal_id: str) -> list[AuthSession]:
        """Every session of a principal, oldest first."""
        return self.list_by(sort=["created_at"], principal_id=principal_id)

    def live_ids_for_principal(self, principal_id: str) -> list[str]:
        stmt = select(AuthSession.id).where(
            AuthSession.principal_id == principal_id,
            AuthSession.revoked.is_(False),
        )
        return list(self.session.execute(stmt).scalars().all())

    def mark_revoked(self, session_id: str, *, reason: str, when: datetime) -> bool:
        """Revoke a live session.

        :returns: ``True`` if this call flipped the flag, ``False`` when the
            session was already revoked or does not exist.
        """
        stmt = (
            update(AuthSession)
            .where(AuthSession.id == session_id, AuthSession.revoked.is_(False))
            .values(revoked=True, revoked_at=when, revoked_reason=reason)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1


class RefreshTokenRepository(BaseRepository[RefreshTokenRecord]):
    """Persistence-only repository for :class:`RefreshTokenRecord`."""

    model = RefreshTokenRecord

    def _pk_attr(self) -> InstrumentedAttribute[str]:
        return RefreshTokenRecord.jti

    def compare_and_set_status(
        self,
        jti: str,
        *,
        expected: Iterable[str],
        new: str,
        replaced_by: str | None = None,
    ) -> bool:
        """Move ``jti`` to ``new`` only if its status is one of ``expected``.

        :returns: ``True`` when exactly one row changed.
        """
        values: dict[str, str] = {"status": new}
        if replaced_by is not None:
            values["replaced_by_jti"] = replaced_by
        stmt = (
            update(RefreshTokenRecord)
            .where(
                RefreshTokenRecord.jti == jti,
                RefreshTokenRecord.status.in_(list(expected)),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount == 1
