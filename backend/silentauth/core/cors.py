"""CORS policy for browser clients of the token endpoints."""

from __future__ import annotations

from flask import Flask
from flask_cors import CORS


def init_app(app: Flask) -> None:
    """Apply the CORS policy to ``/api/*``.

    ``CORS_ORIGINS`` is a comma-separated allow-list. Credentials, and with
    them the auth cookies, are only allowed for listed origins; a blank or
    ``"*"`` value opens the API to any origin without cookies. Browsers may
    send the anti-forgery header and read the renewal marker.
    """
    origins = [o.strip() for o in app.config.get("CORS_ORIGINS", "").split(",") if o.strip()]
    any_origin = not origins or origins == ["*"]
    cfg = app.config

    CORS(
        app,
        resources={r"/api/*": {"origins": "*" if any_origin else origins}},
        supports_credentials=not any_origin,
        allow_headers=[
            "Content-Type",
            "Authorization",
            cfg.get("ANTI_FORGERY_HEADER", "X-CSRF-Token"),
            "X-Request-ID",
        ],
        expose_headers=[cfg.get("RENEWAL_HEADER", "X-Token-Renewal"), "X-Request-ID"],
        max_age=cfg.get("CORS_MAX_AGE", 600),
    )
