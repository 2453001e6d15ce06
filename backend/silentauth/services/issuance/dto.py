# silentauth/services/issuance/dto.py
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any


@dataclass(frozen=True, slots=True)
class TokenBundleOut:
    """
    Everything a client receives after login or refresh.

    :param access_token: Short-lived signed access token.
    :param refresh_token: Single-use refresh token (cookie transport only).
    :param anti_forgery_token: Session-bound anti-forgery token.
    :param session_id: Session the tokens belong to.
    :param principal_id: Authenticated principal.
    :param access_expires_at: Access token expiry (UTC).
    :param refresh_expires_at: Refresh token expiry (UTC).
    """

    access_token: str
    refresh_token: str
    anti_forgery_token: str
    session_id: str
    principal_id: str
    access_expires_at: datetime
    refresh_expires_at: datetime


@dataclass(frozen=True, slots=True)
class AuthTokenConfig:
    """Lifetimes used when minting tokens."""

    access_ttl: timedelta = timedelta(minutes=15)
    refresh_ttl: timedelta = timedelta(days=14)

    def __post_init__(self) -> None:
        if self.access_ttl <= timedelta(0) or self.refresh_ttl <= timedelta(0):
            raise ValueError("token lifetimes must be positive")
        if self.access_ttl >= self.refresh_ttl:
            raise ValueError("ACCESS_TOKEN_TTL must be shorter than REFRESH_TOKEN_TTL")

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> AuthTokenConfig:
        return cls(
            access_ttl=timedelta(seconds=int(config["ACCESS_TOKEN_TTL"])),
            refresh_ttl=timedelta(seconds=int(config["REFRESH_TOKEN_TTL"])),
        )
