"""HTTP surface: the versioned auth API and the key discovery document."""

from __future__ import annotations

from collections.abc import Iterable

from flask import Blueprint, Flask


def register_blueprint_group(
    app: Flask,
    *,
    base_prefix: str,
    entries: Iterable[tuple[Blueprint, str]],
) -> None:
    """Mount each ``(blueprint, relative_prefix)`` pair under ``base_prefix``.

    An empty relative prefix mounts the blueprint at ``base_prefix`` itself.
    """

    base = base_prefix.strip("/")
    for bp, rel_prefix in entries:
        segments = [s for s in (base, rel_prefix.strip("/")) if s]
        app.register_blueprint(bp, url_prefix="/" + "/".join(segments))


def init_app(app: Flask) -> None:
    """Register ``/api/v1`` and ``/.well-known``."""

    from silentauth.api.v1 import API_VERSION, REGISTRY
    from silentauth.api.wellknown import bp as wellknown_bp

    api_base = app.config.get("API_BASE_PREFIX", "/api")
    register_blueprint_group(app, base_prefix=f"{api_base}/{API_VERSION}", entries=REGISTRY)
    app.register_blueprint(wellknown_bp, url_prefix="/.well-known")


__all__ = ["init_app", "register_blueprint_group"]
