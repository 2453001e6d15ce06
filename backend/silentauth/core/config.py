"""Application settings with environment-based simple classes."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from typing import Any, Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'


load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    return int(val)


def env_json(name: str, default: Any) -> Any:
    """Parse a JSON document from an environment variable.

    :param name: Environment variable to inspect.
    :param default: Value returned when the variable is unset or blank.
    :raises ValueError: When the variable holds invalid JSON.
    """
    val = os.getenv(name)
    if val is None or not val.strip():
        return default
    try:
        return json.loads(val)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must contain valid JSON") from exc


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    API_BASE_PREFIX: str
        Root path for registering API blueprints.
    SECRET_KEY: str
        Flask secret. Token signing does not use it; tokens are signed with
        the RSA key configured through ``JWT_PRIVATE_KEY``.
    JWT_ISSUER, JWT_AUDIENCE: str
        ``iss``/``aud`` stamped on every token and enforced on verification.
    JWT_KEY_ID: str
        ``kid`` header of tokens signed with the current private key.
    JWT_PRIVATE_KEY / JWT_PRIVATE_KEY_FILE: str | None
        PEM text (or path) of the signing key.
    JWT_PREVIOUS_PUBLIC_KEYS: str
        ``kid=path`` pairs (comma separated) still accepted for verification.
    ACCESS_TOKEN_TTL, REFRESH_TOKEN_TTL, ANTI_FORGERY_TTL: int
        Token lifetimes in seconds.
    ANTI_FORGERY_MODE: str
        ``session_bound`` (signature + session liveness) or ``stateless``
        (signature only).
    SESSION_STORE_BACKEND: str
        ``sql`` | ``redis`` | ``memory``.
    FEDERATED_PROVIDERS: dict
        Provider name -> ``{issuer, audience, jwks_uri | public_key, algorithms}``.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes. Keys prefixed ``JWT_*_COOKIE_*`` are
    consumed by ``flask-jwt-extended`` for the cookie transport.
    """

    API_BASE_PREFIX = "/api"
    APP_VERSION = os.getenv("APP_VERSION", "dev")

    SECRET_KEY = os.getenv("SECRET_KEY", "CHANGE_ME")

    # DB
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///./dev.db")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Flask & JSON
    JSON_SORT_KEYS = False
    PROPAGATE_EXCEPTIONS = False

    # Logging & CORS
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")

    # Token signing
    JWT_ALGORITHM = "RS256"
    JWT_ISSUER = os.getenv("JWT_ISSUER", "silentauth")
    JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "silentauth-api")
    JWT_KEY_ID = os.getenv("JWT_KEY_ID", "primary")
    JWT_PRIVATE_KEY = os.getenv("JWT_PRIVATE_KEY")
    JWT_PRIVATE_KEY_FILE = os.getenv("JWT_PRIVATE_KEY_FILE")
    JWT_PREVIOUS_PUBLIC_KEYS = os.getenv("JWT_PREVIOUS_PUBLIC_KEYS", "")
    JWT_EPHEMERAL_KEYS = env_bool("JWT_EPHEMERAL_KEYS", True)

    # Lifetimes (seconds)
    ACCESS_TOKEN_TTL = env_int("ACCESS_TOKEN_TTL", 15 * 60)
    REFRESH_TOKEN_TTL = env_int("REFRESH_TOKEN_TTL", 14 * 24 * 3600)
    ANTI_FORGERY_TTL = env_int("ANTI_FORGERY_TTL", 8 * 3600)

    # Anti-forgery
    ANTI_FORGERY_MODE = os.getenv("ANTI_FORGERY_MODE", "session_bound")
    ANTI_FORGERY_HEADER = "X-CSRF-Token"
    ANTI_FORGERY_COOKIE_NAME = "csrf_token"
    ANTI_FORGERY_REQUIRED_ON_LOGIN = env_bool("ANTI_FORGERY_REQUIRED_ON_LOGIN", True)

    # Transport cookies (flask-jwt-extended)
    JWT_TOKEN_LOCATION = ["cookies", "headers"]
    JWT_ACCESS_COOKIE_NAME = "access_token"
    JWT_REFRESH_COOKIE_NAME = "refresh_token"
    JWT_ACCESS_COOKIE_PATH = "/api/"
    JWT_REFRESH_COOKIE_PATH = "/api/v1/auth/token"
    JWT_COOKIE_SECURE = env_bool("JWT_COOKIE_SECURE", False)
    JWT_COOKIE_SAMESITE = "Strict"
    JWT_COOKIE_CSRF_PROTECT = False

    # Renewal signal
    RENEWAL_HEADER = "X-Token-Renewal"
    RENEWAL_HEADER_VALUE = "refresh"

    # Session store
    SESSION_STORE_BACKEND = os.getenv("SESSION_STORE_BACKEND", "sql")
    REDIS_URL = os.getenv("REDIS_URL")

    # Federation
    FEDERATED_PROVIDERS: dict[str, Any] = env_json("FEDERATED_PROVIDERS", {})

    # Rate limiting
    RATELIMIT_ENABLED = env_bool("RATELIMIT_ENABLED", True)
    RATELIMIT_STORAGE_URI = os.getenv("RATELIMIT_STORAGE_URI", "memory://")
    AUTH_LOGIN_RATE_LIMIT = os.getenv("AUTH_LOGIN_RATE_LIMIT", "10 per minute")

    # Built-ins de Flask
    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Enables debug mode by default. Without ``JWT_PRIVATE_KEY`` an ephemeral
    RSA key pair is generated at startup, so tokens do not survive restarts.
    """

    DEBUG = env_bool("FLASK_DEBUG", True)
    CORS_MAX_AGE = 600  # 10 minutes


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Forces ``TESTING`` mode and disables debug logs.
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Rate limiting is disabled so tests can log in repeatedly.
    """

    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    PROPAGATE_EXCEPTIONS = True
    RATELIMIT_ENABLED = False
    SESSION_STORE_BACKEND = "sql"


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments.

    Notes
    -----
    Secure cookies are forced and ephemeral signing keys are refused: the
    factory raises when no private key is configured.
    """

    DEBUG = False
    SQLALCHEMY_ECHO = False
    PROPAGATE_EXCEPTIONS = False
    JWT_COOKIE_SECURE = True
    JWT_EPHEMERAL_KEYS = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Returns
    -------
    type[BaseConfig]
        Class to pass to :meth:`flask.Config.from_object`.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)
