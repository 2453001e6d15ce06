"""Session and refresh-token lineage tables backing the SQL session store."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silentauth.core.extensions import db

from .base import ReprMixin


class AuthSession(ReprMixin, db.Model):
    """
    One login: the lineage of refresh tokens descending from it.

    Fields
    ------
    id : str
        Opaque random identifier carried as ``sid`` in every token.
    principal_id : str
        Owner.
    current_refresh_jti : str | None
        The only refresh token that may be exchanged right now.
    revoked : bool
        Terminal; once set no token of the session is honored again.
    revoked_reason : str | None
        ``logout`` | ``reuse_detected`` | ``admin``.
    """

    __tablename__ = "auth_sessions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    principal_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    current_refresh_jti: Mapped[str | None] = mapped_column(String(64), nullable=True)
    revoked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    revoked_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)

    refresh_tokens: Mapped[list[RefreshTokenRecord]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (Index("ix_auth_sessions_principal_id", "principal_id"),)


class RefreshTokenRecord(ReprMixin, db.Model):
    """
    One refresh token ever issued. Rows are kept after rotation for audit.

    ``status`` moves ``current`` -> ``consumed`` -> ``rotated``; ``revoked``
    when the session is revoked while the token is still live.
    """

    __tablename__ = "refresh_tokens"

    jti: Mapped[str] = mapped_column(String(64), primary_key=True)
    session_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("auth_sessions.id", ondelete="CASCADE"),
        nullable=False,
    )
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="current")
    replaced_by_jti: Mapped[str | None] = mapped_column(String(64), nullable=True)

    session: Mapped[AuthSession] = relationship(back_populates="refresh_tokens")

    __table_args__ = (Index("ix_refresh_tokens_session_id", "session_id"),)
