"""
silentauth.services._shared.ports
=================================

Collection of *ports* (hexagonal interfaces) that define the contracts for
token signing and session persistence.

Modules
-------
- :mod:`token_codec`:
    Defines :class:`~.TokenCodec`: signs and verifies purpose-tagged tokens.

- :mod:`session_store`:
    Defines :class:`~.SessionStore`, :class:`~.ConsumeResult`,
    :class:`~.ConsumeOutcome` and the read models, plus the lock-guarded
    :class:`~.InMemorySessionStore`.

Design Notes
------------
Concrete adapters (PyJWT codec, Redis and SQL stores) live under
``silentauth.infra`` and implement these interfaces.
"""

from __future__ import annotations

from .session_store import (
    ConsumeOutcome,
    ConsumeResult,
    InMemorySessionStore,
    RefreshTokenStatus,
    RefreshTokenView,
    RevocationReason,
    SessionStore,
    SessionView,
)
from .token_codec import Clock, TokenCodec, utc_now

__all__ = [
    "Clock",
    "ConsumeOutcome",
    "ConsumeResult",
    "InMemorySessionStore",
    "RefreshTokenStatus",
    "RefreshTokenView",
    "RevocationReason",
    "SessionStore",
    "SessionView",
    "TokenCodec",
    "utc_now",
]
