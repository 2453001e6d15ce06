"""Construction of the token codec, session store and auth services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import Flask, current_app

from silentauth.infra.jwt import JWTTokenCodec, KeyRing
from silentauth.services._shared.ports.session_store import InMemorySessionStore, SessionStore
from silentauth.services._shared.ports.token_codec import Clock, utc_now
from silentauth.services.anti_forgery import AntiForgeryService
from silentauth.services.credentials import CredentialValidator, FederatedAssertionVerifier
from silentauth.services.guard import ResourceGuard
from silentauth.services.issuance import AuthTokenConfig, TokenIssuanceService
from silentauth.services.principals import PrincipalService

EXTENSION_KEY = "silentauth"


@dataclass(slots=True)
class SecurityComponents:
    """Per-app singletons shared by the API and the CLI."""

    keys: KeyRing
    codec: JWTTokenCodec
    session_store: SessionStore
    principals: PrincipalService
    credentials: CredentialValidator
    anti_forgery: AntiForgeryService
    issuance: TokenIssuanceService
    guard: ResourceGuard


def build_session_store(app: Flask) -> SessionStore:
    """
    Instantiate the store selected by ``SESSION_STORE_BACKEND``.

    :raises RuntimeError: For ``redis`` without ``REDIS_URL``.
    :raises ValueError: For an unknown backend name.
    """
    backend = str(app.config.get("SESSION_STORE_BACKEND", "sql")).strip().lower()
    if backend == "sql":
        from silentauth.infra.sql import SqlSessionStore

        return SqlSessionStore()
    if backend == "redis":
        from silentauth.core.extensions import get_redis
        from silentauth.infra.redis import RedisSessionStore

        return RedisSessionStore(get_redis())
    if backend == "memory":
        return InMemorySessionStore()
    raise ValueError(f"Unknown SESSION_STORE_BACKEND: {backend!r}")


def init_app(app: Flask, *, session_store: SessionStore | None = None, clock: Clock = utc_now) -> None:
    """
    Wire the security services into ``app.extensions``.

    Parameters
    ----------
    app:
        Application whose config supplies keys, lifetimes and backends.
    session_store:
        Optional pre-built store (tests inject an in-memory or fakeredis one).
    clock:
        Time source shared by every service.
    """
    cfg = app.config
    keys = KeyRing.from_config(cfg)
    codec = JWTTokenCodec(
        keys,
        issuer=cfg["JWT_ISSUER"],
        audience=cfg["JWT_AUDIENCE"],
        algorithms=(cfg.get("JWT_ALGORITHM", "RS256"),),
        clock=clock,
    )
    store = session_store if session_store is not None else build_session_store(app)

    principals = PrincipalService(clock=clock)
    anti_forgery = AntiForgeryService(
        codec=codec,
        session_store=store,
        mode=cfg.get("ANTI_FORGERY_MODE", "session_bound"),
        ttl=timedelta(seconds=int(cfg["ANTI_FORGERY_TTL"])),
        clock=clock,
    )
    components = SecurityComponents(
        keys=keys,
        codec=codec,
        session_store=store,
        principals=principals,
        credentials=CredentialValidator(
            federation=FederatedAssertionVerifier.from_config(cfg.get("FEDERATED_PROVIDERS") or {}),
            clock=clock,
        ),
        anti_forgery=anti_forgery,
        issuance=TokenIssuanceService(
            codec=codec,
            session_store=store,
            anti_forgery=anti_forgery,
            principal_lookup=principals.get,
            token_cfg=AuthTokenConfig.from_config(cfg),
            clock=clock,
        ),
        guard=ResourceGuard(codec, clock=clock),
    )
    app.extensions[EXTENSION_KEY] = components


def get_components(app: Flask | None = None) -> SecurityComponents:
    """Return the components of ``app`` (default: the current app)."""
    target = app or current_app
    try:
        return target.extensions[EXTENSION_KEY]
    except KeyError as exc:
        raise RuntimeError("Security components are not initialized; call security.init_app().") from exc
