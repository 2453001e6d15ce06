"""Application factory wiring Flask extensions, security services and blueprints."""

from __future__ import annotations

from flask import Flask

from silentauth.core.config import BaseConfig, get_config
from silentauth.core.logger import configure_logging, init_app as init_logging
from silentauth.services._shared.ports.session_store import SessionStore


def create_app(
    config: str | type[BaseConfig] | object | None = None,
    *,
    instance_relative_config: bool = True,
    instance_config_filename: str = "config.py",
    session_store: SessionStore | None = None,
) -> Flask:
    """Build and configure the Flask application.

    :param config: Config object or import path; defaults to ``APP_ENV``.
    :param session_store: Optional store replacing ``SESSION_STORE_BACKEND``.
    """

    app = Flask(__name__, instance_relative_config=instance_relative_config)

    app.config.from_object(get_config() if config is None else config)
    if instance_relative_config and instance_config_filename:
        app.config.from_pyfile(instance_config_filename, silent=True)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    from silentauth.core import extensions

    extensions.init_app(app)

    init_logging(app)

    from silentauth.core import cors

    cors.init_app(app)

    from silentauth.core import security

    security.init_app(app, session_store=session_store)

    from silentauth.api import init_app as init_api

    init_api(app)

    from silentauth.core import errors

    errors.init_app(app)

    from silentauth import cli as app_cli

    app_cli.init_app(app)

    return app
