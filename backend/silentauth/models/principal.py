"""Principal model: the authenticated identity tokens are issued for."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship, validates
from werkzeug.security import check_password_hash, generate_password_hash

from silentauth.core.extensions import db

from .base import ReprMixin, TimestampMixin, UUIDPKMixin

if TYPE_CHECKING:
    from .identity_link import FederatedIdentityLink

DEFAULT_ROLES = ["user"]


class Principal(UUIDPKMixin, ReprMixin, TimestampMixin, db.Model):
    """
    A user or service identity that can authenticate.

    Fields
    ------
    id : str
        Stable UUID, never reused.
    email : str
        Login email. Stored normalized (lowercase, trimmed).
    password_hash : str | None
        Hashed password (write-only setter via ``password``). ``None`` for
        principals that only sign in through a federated provider.
    roles : list[str]
        Authority strings copied into access tokens.
    enabled : bool
        Disabled principals cannot log in nor refresh.
    last_login_at : datetime | None
        Time of the last successful credential validation.
    """

    __tablename__ = "principals"

    # Columns
    email: Mapped[str] = mapped_column(String(254), nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(254), nullable=True)
    roles: Mapped[list[str]] = mapped_column(
        JSON, nullable=False, default=lambda: list(DEFAULT_ROLES)
    )
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    identity_links: Mapped[list[FederatedIdentityLink]] = relationship(
        back_populates="principal",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    # Constraints & indexes
    __table_args__ = (
        UniqueConstraint("email", name="uq_principals_email"),
        Index("ix_principals_email", "email"),
    )

    # -------------------- Password API --------------------
    @property
    def password(self) -> Any:  # pragma: no cover - explicit write-only contract
        """
        Disallow reading passwords.

        :raises AttributeError: Always, to ensure password is write-only.
        """
        raise AttributeError("Password is write-only.")

    @password.setter
    def password(self, raw: str) -> None:
        """
        Hash and set the password.

        :param raw: Plain text password to hash.
        :type raw: str
        """
        if not isinstance(raw, str) or not raw:
            raise ValueError("Password must be a non-empty string.")
        self.password_hash = generate_password_hash(raw)

    def verify_password(self, raw: str) -> bool:
        """
        Verify a password against the stored hash.

        :param raw: Plain text password candidate.
        :type raw: str
        :returns: ``True`` if it matches; ``False`` otherwise or when the
            principal has no local password.
        :rtype: bool
        """
        if not self.password_hash:
            return False
        return bool(check_password_hash(self.password_hash, raw))

    # -------------------- Validators --------------------
    @validates("email")
    def _normalize_email(self, key: str, value: str) -> str:
        """
        Normalize and validate email.

        :param key: Field name (``email``).
        :type key: str
        :param value: Email to normalize.
        :type value: str
        :returns: Normalized email (lowercased/trimmed).
        :rtype: str
        :raises ValueError: If email is missing or malformed.
        """
        if not value or not isinstance(value, str):
            raise ValueError("Email is required.")
        v = value.strip().lower()
        # Minimal sanity check; full validation happens at API layer.
        if "@" not in v or "." not in v.split("@")[-1]:
            raise ValueError("Email format looks invalid.")
        return v

    @validates("roles")
    def _normalize_roles(self, key: str, value: list[str]) -> list[str]:
        """Deduplicate roles, preserving order, and reject blanks."""
        roles: list[str] = []
        for role in value or []:
            if not isinstance(role, str) or not role.strip():
                raise ValueError("Roles must be non-empty strings.")
            if role.strip() not in roles:
                roles.append(role.strip())
        return roles
