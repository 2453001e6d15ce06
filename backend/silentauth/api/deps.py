"""Shared API helpers: auth decorators, cookie transport and cross-cutting concerns."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from flask import Response, current_app, g, jsonify, request
from flask_jwt_extended import set_access_cookies, set_refresh_cookies, unset_jwt_cookies

from silentauth.core.security import SecurityComponents, get_components
from silentauth.services._shared.base import BaseService
from silentauth.services._shared.errors import ServiceError
from silentauth.services.guard import AccessContext
from silentauth.services.issuance import TokenBundleOut

F = TypeVar("F", bound=Callable[..., Any])

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


def components() -> SecurityComponents:
    """Return the security services bound to the current app."""

    return get_components()


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]


def translate_service_errors(func: F) -> F:
    """Re-raise service-layer errors as their HTTP counterparts."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        try:
            return func(*args, **kwargs)
        except ServiceError as exc:
            raise BaseService().translate_exceptions(exc) from exc

    return wrapper  # type: ignore[return-value]


# --------------------------------------------------------------------------- #
# Access token
# --------------------------------------------------------------------------- #


def read_access_token() -> str | None:
    """Return the access token from its cookie, else from ``Authorization: Bearer``."""

    token = request.cookies.get(current_app.config["JWT_ACCESS_COOKIE_NAME"])
    if token:
        return token
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    return None


def read_refresh_token() -> str | None:
    return request.cookies.get(current_app.config["JWT_REFRESH_COOKIE_NAME"])


def current_access() -> AccessContext:
    """Return the context stored by :func:`require_access_token`."""

    return g.access


def require_access_token(func: F) -> F:
    """Ensure the request carries a valid access token.

    Expired tokens surface as a 401 with the renewal marker; every other
    failure is a plain 401.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        g.access = components().guard.authenticate(read_access_token())
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def require_roles(*roles: str) -> Callable[[F], F]:
    """Ensure the verified access token carries every role in ``roles``."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        @require_access_token
        def wrapper(*args: Any, **kwargs: Any):
            components().guard.authorize(current_access(), roles)
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


# --------------------------------------------------------------------------- #
# Anti-forgery
# --------------------------------------------------------------------------- #


def require_anti_forgery(
    *,
    require_session: bool = True,
    bind_access_session: bool = False,
    check_liveness: bool | None = None,
    allow_expired: bool = False,
    enabled_by: str | None = None,
) -> Callable[[F], F]:
    """Validate the echoed anti-forgery header on state-changing requests.

    Parameters
    ----------
    require_session:
        Demand an ``authenticated`` token.
    bind_access_session:
        The token's session must equal the access token's (apply
        :func:`require_access_token` first).
    check_liveness:
        Override the configured liveness check.
    allow_expired:
        Accept a token past its expiry whose signature still verifies.
    enabled_by:
        Config flag that must be truthy for the check to run.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            g.anti_forgery = None
            enabled = enabled_by is None or current_app.config.get(enabled_by, True)
            if request.method not in SAFE_METHODS and enabled:
                header = current_app.config.get("ANTI_FORGERY_HEADER", "X-CSRF-Token")
                g.anti_forgery = components().anti_forgery.validate(
                    request.headers.get(header),
                    require_session=require_session,
                    expected_session_id=current_access().session_id if bind_access_session else None,
                    check_liveness=check_liveness,
                    allow_expired=allow_expired,
                )
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


# --------------------------------------------------------------------------- #
# Cookies
# --------------------------------------------------------------------------- #


def set_anti_forgery_cookie(response: Response, token: str, *, max_age: int | None = None) -> None:
    """Mirror the anti-forgery token into a script-readable cookie."""

    cfg = current_app.config
    response.set_cookie(
        cfg.get("ANTI_FORGERY_COOKIE_NAME", "csrf_token"),
        token,
        max_age=max_age if max_age is not None else int(cfg["ANTI_FORGERY_TTL"]),
        secure=bool(cfg.get("JWT_COOKIE_SECURE", False)),
        httponly=False,
        samesite=cfg.get("JWT_COOKIE_SAMESITE", "Strict"),
        path="/",
    )


def set_bundle_cookies(response: Response, bundle: TokenBundleOut) -> None:
    """Set access, refresh and anti-forgery cookies for a fresh bundle."""

    cfg = current_app.config
    # every cookie lives as long as the refresh token: an expired access token
    # must still reach the guard, and refresh accepts an expired anti-forgery
    # token from the same session
    lifetime = int(cfg["REFRESH_TOKEN_TTL"])
    set_access_cookies(response, bundle.access_token, max_age=lifetime)
    set_refresh_cookies(response, bundle.refresh_token, max_age=lifetime)
    set_anti_forgery_cookie(response, bundle.anti_forgery_token, max_age=lifetime)


def clear_auth_cookies(response: Response) -> None:
    """Remove every auth cookie (access, refresh and anti-forgery)."""

    unset_jwt_cookies(response)
    response.delete_cookie(current_app.config.get("ANTI_FORGERY_COOKIE_NAME", "csrf_token"), path="/")
