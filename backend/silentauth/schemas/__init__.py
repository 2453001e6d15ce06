"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    AntiForgeryTokenSchema,
    FederatedLoginSchema,
    LoginSchema,
    LogoutAllResultSchema,
    SessionSchema,
    TokenBundleSchema,
    WhoAmISchema,
)

__all__ = [
    "AntiForgeryTokenSchema",
    "FederatedLoginSchema",
    "LoginSchema",
    "LogoutAllResultSchema",
    "SessionSchema",
    "TokenBundleSchema",
    "WhoAmISchema",
]
