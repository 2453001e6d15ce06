"""
Abstract Unit of Work contract shared by services and the SQL session store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from silentauth.repositories import (
        AuthSessionRepository,
        FederatedIdentityLinkRepository,
        PrincipalRepository,
        RefreshTokenRepository,
    )


class UnitOfWork(ABC):
    """
    Transactional boundary for one use case.

    Repositories exposed here share a single session: principals and their
    federated links for credential validation, sessions and refresh-token
    records for the SQL session store. Leaving the ``with`` block commits on
    success and rolls back on error.
    """

    principals: PrincipalRepository
    identity_links: FederatedIdentityLinkRepository
    sessions: AuthSessionRepository
    refresh_tokens: RefreshTokenRepository

    @abstractmethod
    def __enter__(self) -> UnitOfWork: ...
    @abstractmethod
    def __exit__(self, exc_type, exc, tb) -> None: ...
    @abstractmethod
    def commit(self) -> None: ...
    @abstractmethod
    def rollback(self) -> None: ...
