"""Principal repository for persistence and credential lookups."""

from __future__ import annotations

from datetime import datetime
from typing import cast

from sqlalchemy import select

from silentauth.models.principal import Principal
from silentauth.repositories.base import BaseRepository


class PrincipalRepository(BaseRepository[Principal]):
    """Persistence-only repository for :class:`Principal`.

    It NEVER signs tokens nor touches sessions; only DB-level identity data.
    """

    model = Principal

    # ---------------------------- Lookup helpers ----------------------------

    def get_by_email(self, email: str) -> Principal | None:
        """Fetch a principal by email (case-insensitive).

        :param email: Email address to normalise and search.
        :type email: str
        :returns: Principal instance or ``None`` when not found.
        :rtype: Principal | None
        """
        stmt = select(Principal).where(Principal.email == email.lower().strip())
        result = self.session.execute(stmt).scalars().first()
        return cast(Principal | None, result)

    def exists_by_email(self, email: str) -> bool:
        """Return ``True`` when a principal with the provided email exists."""
        stmt = select(Principal.id).where(Principal.email == email.lower().strip())
        return bool(self.session.execute(stmt).first())

    # ---------------------------- Mutations ----------------------------

    def touch_last_login(self, principal_id: str, when: datetime) -> None:
        """Record a successful credential validation.

        :param principal_id: Principal identifier.
        :param when: Login time (UTC).
        :raises ValueError: If the principal does not exist.
        """
        principal = self.get(principal_id)
        if principal is None:
            raise ValueError(f"Principal {principal_id} not found.")
        principal.last_login_at = when
        self.flush()
