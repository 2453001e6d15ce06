"""Link between a federated provider subject and a local principal."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from silentauth.core.extensions import db

from .base import ReprMixin, TimestampMixin

if TYPE_CHECKING:
    from .principal import Principal


class FederatedIdentityLink(ReprMixin, TimestampMixin, db.Model):
    """
    ``(provider, subject)`` -> principal mapping.

    Created on first federated login and never mutated afterwards. Deleted
    together with its principal.
    """

    __tablename__ = "federated_identity_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    provider: Mapped[str] = mapped_column(String(64), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    principal_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("principals.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    principal: Mapped[Principal] = relationship(back_populates="identity_links")

    __table_args__ = (
        UniqueConstraint("provider", "subject", name="uq_federated_identity_links_provider_subject"),
    )
