"""Extension singletons shared by the models, the API and the session stores."""

from __future__ import annotations

import redis  # type: ignore[import-untyped]
from flask import Flask
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData

# Stable constraint names so batch migrations on SQLite can find them.
metadata = MetaData(
    naming_convention={
        "ix": "ix_%(table_name)s_%(column_0_name)s",
        "uq": "uq_%(table_name)s_%(column_0_name)s",
        "ck": "ck_%(table_name)s_%(constraint_name)s",
        "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
        "pk": "pk_%(table_name)s",
    }
)

db: SQLAlchemy = SQLAlchemy(session_options={"autoflush": False}, metadata=metadata)
migrate = Migrate(render_as_batch=True)
# Cookie names, paths and flags only; tokens are signed by silentauth.infra.jwt.
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)
redis_client: redis.Redis | None = None


def init_app(app: Flask) -> None:
    """Bind the extensions to ``app`` and connect Redis when ``REDIS_URL`` is set.

    Raises
    ------
    RuntimeError
        If ``REDIS_URL`` is configured but the server does not answer.
    """
    db.init_app(app)

    from silentauth import models as _models  # noqa: F401  (registers tables on metadata)

    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    _connect_redis(app)


def _connect_redis(app: Flask) -> None:
    global redis_client
    redis_url = app.config.get("REDIS_URL")
    if not redis_url:
        redis_client = None
        app.extensions.pop("redis_client", None)
        return

    client = redis.Redis.from_url(redis_url)
    try:
        client.ping()
    except RedisError as exc:
        raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
    redis_client = client
    app.extensions["redis_client"] = client


def get_redis() -> redis.Redis:
    """Return the client backing the Redis session store."""
    if redis_client is None:
        raise RuntimeError("Redis client is not initialized. Set REDIS_URL and call init_app().")
    return redis_client
