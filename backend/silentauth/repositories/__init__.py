"""Repository package exposing persistence-layer access for all models."""

from __future__ import annotations

from silentauth.repositories.auth_session import AuthSessionRepository, RefreshTokenRepository
from silentauth.repositories.base import BaseRepository
from silentauth.repositories.identity_link import FederatedIdentityLinkRepository
from silentauth.repositories.principal import PrincipalRepository

__all__ = [
    "AuthSessionRepository",
    "BaseRepository",
    "FederatedIdentityLinkRepository",
    "PrincipalRepository",
    "RefreshTokenRepository",
]
