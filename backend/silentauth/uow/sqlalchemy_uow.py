"""
SQLAlchemy implementation of UnitOfWork for Flask.
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import suppress

from sqlalchemy import event
from sqlalchemy.orm import Session

from silentauth.core.extensions import db
from silentauth.repositories import (
    AuthSessionRepository,
    FederatedIdentityLinkRepository,
    PrincipalRepository,
    RefreshTokenRepository,
)
from silentauth.uow.base import UnitOfWork

SessionFactory = Callable[[], Session]


class SQLAlchemyRepositoryContainer:
    """Provide repository instances that share a SQLAlchemy session."""

    def __init__(self, *, session: Session) -> None:
        self.session = session
        self.principals = PrincipalRepository(session=self.session)
        self.identity_links = FederatedIdentityLinkRepository(session=self.session)
        self.sessions = AuthSessionRepository(session=self.session)
        self.refresh_tokens = RefreshTokenRepository(session=self.session)


class SQLAlchemyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    SQLAlchemy-backed UoW.

    By default the Flask-scoped ``db.session`` is shared across all
    repositories. A ``session_factory`` gives the UoW its own session, which it
    closes on exit; the SQL session store uses this outside of a request.
    """

    def __init__(self, *, session_factory: SessionFactory | None = None) -> None:
        self._owns_session = session_factory is not None
        super().__init__(session=session_factory() if session_factory else db.session)

    def __enter__(self) -> SQLAlchemyUnitOfWork:
        # No-op: the session is lazily started on the first statement.
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is None:
                try:
                    self.commit()
                except Exception:
                    self.rollback()
                    raise
            else:
                self.rollback()
        finally:
            if self._owns_session:
                self.session.close()

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


class SQLAlchemyReadOnlyUnitOfWork(SQLAlchemyRepositoryContainer, UnitOfWork):
    """
    Read-only Unit of Work backed by the Flask-scoped SQLAlchemy session.

    Installs a ``before_flush`` guard that rejects pending ORM writes and
    always rolls back on exit. ``commit()`` is disallowed.

    Notes
    -----
    The scope attaches to any transaction already open on the session (the
    transactional test fixture relies on this), so the rollback on exit only
    discards unflushed state.
    """

    def __init__(self) -> None:
        super().__init__(session=db.session)
        self._guard_installed = False

    def __enter__(self) -> SQLAlchemyReadOnlyUnitOfWork:
        event.listen(self.session, "before_flush", self._block_flush)
        self._guard_installed = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            if self.session.new or self.session.dirty or self.session.deleted:
                self.session.rollback()
        finally:
            if self._guard_installed:
                with suppress(Exception):
                    event.remove(self.session, "before_flush", self._block_flush)
                self._guard_installed = False

    def commit(self) -> None:
        """
        Disallow commit in read-only Unit of Work.

        :raises RuntimeError: always, to prevent accidental writes.
        """
        raise RuntimeError("Read-only UnitOfWork does not allow commit().")

    def rollback(self) -> None:
        self.session.rollback()

    @staticmethod
    def _block_flush(session, flush_context, instances) -> None:
        if session.new or session.dirty or session.deleted:
            raise RuntimeError(
                "Read-only UnitOfWork: ORM flush blocked (new/dirty/deleted objects present)."
            )
