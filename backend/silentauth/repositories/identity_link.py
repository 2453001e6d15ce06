"""Repository for federated identity links."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from silentauth.models.identity_link import FederatedIdentityLink
from silentauth.repositories.base import BaseRepository


class FederatedIdentityLinkRepository(BaseRepository[FederatedIdentityLink]):
    """Persistence-only repository for :class:`FederatedIdentityLink`."""

    model = FederatedIdentityLink

    def get_by_provider_subject(self, provider: str, subject: str) -> FederatedIdentityLink | None:
        """Resolve the link for a provider-asserted subject.

        :param provider: Provider name as configured (e.g. ``"google"``).
        :param subject: Provider's stable ``sub`` for the user.
        :returns: Link or ``None`` on first login.
        """
        stmt = select(FederatedIdentityLink).where(
            FederatedIdentityLink.provider == provider,
            FederatedIdentityLink.subject == subject,
        )
        return cast(FederatedIdentityLink | None, self.session.execute(stmt).scalars().first())

    def link(self, *, provider: str, subject: str, principal_id: str) -> FederatedIdentityLink:
        """Create and flush a new link."""
        return self.add(
            FederatedIdentityLink(provider=provider, subject=subject, principal_id=principal_id)
        )
