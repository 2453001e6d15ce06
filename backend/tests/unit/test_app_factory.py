"""Tests for application assembly and session-store selection."""

from __future__ import annotations

import fakeredis
import pytest
from silentauth import create_app
from silentauth.core.security import get_components
from silentauth.infra.redis import RedisSessionStore
from silentauth.infra.sql import SqlSessionStore
from silentauth.services._shared.ports import InMemorySessionStore

from tests.helpers.config import make_config


def test_default_backend_is_sql(app):
    assert isinstance(get_components(app).session_store, SqlSessionStore)


def test_memory_backend(signing_pem):
    app = create_app(make_config(signing_pem, SESSION_STORE_BACKEND="memory"), instance_relative_config=False)

    assert isinstance(get_components(app).session_store, InMemorySessionStore)


def test_injected_store_wins(signing_pem):
    store = RedisSessionStore(fakeredis.FakeRedis(server=fakeredis.FakeServer()))

    app = create_app(make_config(signing_pem), instance_relative_config=False, session_store=store)

    assert get_components(app).session_store is store


def test_unknown_backend_is_rejected(signing_pem):
    with pytest.raises(ValueError):
        create_app(make_config(signing_pem, SESSION_STORE_BACKEND="carrier-pigeon"), instance_relative_config=False)


def test_redis_backend_needs_a_url(signing_pem):
    with pytest.raises(RuntimeError):
        create_app(make_config(signing_pem, SESSION_STORE_BACKEND="redis"), instance_relative_config=False)


def test_signing_key_is_mandatory_outside_development(signing_pem):
    with pytest.raises(RuntimeError):
        create_app(make_config(signing_pem, JWT_PRIVATE_KEY=None), instance_relative_config=False)


def test_inconsistent_lifetimes_fail_fast(signing_pem):
    with pytest.raises(ValueError):
        create_app(
            make_config(signing_pem, ACCESS_TOKEN_TTL=3600, REFRESH_TOKEN_TTL=60),
            instance_relative_config=False,
        )


def test_security_components_require_init():
    from flask import Flask

    with pytest.raises(RuntimeError):
        get_components(Flask("bare"))


def test_api_and_key_discovery_are_mounted(app):
    rules = {rule.rule for rule in app.url_map.iter_rules()}

    assert "/api/v1/auth/token/refresh" in rules
    assert "/api/v1/health" in rules
    assert "/.well-known/jwks.json" in rules


def test_blueprint_group_joins_prefixes():
    from flask import Blueprint, Flask
    from silentauth.api import register_blueprint_group

    root, nested = Blueprint("root", __name__), Blueprint("nested", __name__)
    root.add_url_rule("/ping", "ping", lambda: "")
    nested.add_url_rule("/pong", "pong", lambda: "")
    bare = Flask("bare")

    register_blueprint_group(bare, base_prefix="/api/v9/", entries=[(root, ""), (nested, "/sub/")])

    rules = {rule.rule for rule in bare.url_map.iter_rules()}
    assert {"/api/v9/ping", "/api/v9/sub/pong"} <= rules


def test_listed_origin_gets_credentials_and_renewal_header(signing_pem):
    app = create_app(make_config(signing_pem, CORS_ORIGINS="https://app.example"), instance_relative_config=False)

    resp = app.test_client().get("/api/v1/health", headers={"Origin": "https://app.example"})

    assert resp.headers["Access-Control-Allow-Origin"] == "https://app.example"
    assert resp.headers["Access-Control-Allow-Credentials"] == "true"
    assert "X-Token-Renewal" in resp.headers["Access-Control-Expose-Headers"]


def test_wildcard_origin_never_carries_cookies(signing_pem):
    app = create_app(make_config(signing_pem, CORS_ORIGINS="*"), instance_relative_config=False)

    resp = app.test_client().get("/api/v1/health", headers={"Origin": "https://evil.example"})

    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "Access-Control-Allow-Credentials" not in resp.headers
