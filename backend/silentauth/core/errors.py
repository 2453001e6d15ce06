"""Centralized JSON (RFC 7807) error handling for the API."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any

from flask import Flask, Response, current_app, has_app_context, has_request_context, jsonify, request
from marshmallow import ValidationError as MarshmallowValidationError
from redis.exceptions import RedisError
from sqlalchemy.exc import IntegrityError, OperationalError
from werkzeug.exceptions import HTTPException

from silentauth.core.logger import ensure_request_id

log = logging.getLogger(__name__)

_STATUS_CODES = {
    400: "bad_request",
    401: "unauthorized",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "conflict",
    415: "unsupported_media_type",
    422: "unprocessable_entity",
    429: "too_many_requests",
    500: "internal_server_error",
    503: "service_unavailable",
}


def _as_problem(
    *,
    status: int,
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build an RFC 7807 Problem Details dict.

    :param status: HTTP status code.
    :param code: Stable machine-consumable error code (the failure kind).
    :param message: Human-readable summary, safe for clients.
    :param details: Optional safe, structured details.
    """
    problem = {
        "type": "about:blank",
        "title": HTTPStatus(status).phrase,
        "status": status,
        "detail": message,
        "instance": request.path if has_request_context() else None,
        "code": code,
        "request_id": ensure_request_id(),
    }
    if details:
        problem["details"] = details
    return problem


def _problem_response(problem: dict[str, Any], headers: dict[str, str] | None = None) -> Response:
    resp = jsonify(problem)
    resp.mimetype = "application/problem+json"
    for name, value in (headers or {}).items():
        resp.headers[name] = value
    return resp


def renewal_headers() -> dict[str, str]:
    """
    Headers marking a 401 as recoverable through the refresh protocol.

    :returns: The configured renewal header plus a bearer challenge.
    """
    config = current_app.config if has_app_context() else {}
    return {
        config.get("RENEWAL_HEADER", "X-Token-Renewal"): config.get("RENEWAL_HEADER_VALUE", "refresh"),
        "WWW-Authenticate": 'Bearer error="invalid_token", error_description="token expired"',
    }


class APIError(Exception):
    """
    Represent a JSON-serializable API error.

    Parameters
    ----------
    message : str
        Human-readable description presented to clients.
    status_code : int, optional
        HTTP status code to return. Defaults to ``400``.
    code : str, optional
        Machine-readable identifier. Authentication failures use the failure
        kind (``token_expired``, ``session_compromised`` ...).
    details : dict[str, Any] | None, optional
        Optional structured payload included in the response body.
    headers : dict[str, str] | None, optional
        Extra response headers, e.g. the renewal marker on expired access
        tokens.
    """

    def __init__(
        self,
        message: str,
        status_code: int = 400,
        code: str = "bad_request",
        details: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = int(status_code)
        self.code = code
        self.details = details or {}
        self.headers = headers or {}

    def to_problem(self) -> dict[str, Any]:
        return _as_problem(
            status=self.status_code,
            code=self.code,
            message=self.message,
            details=self.details or None,
        )


class NotFound(APIError):
    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, status_code=HTTPStatus.NOT_FOUND, code="not_found")


class Conflict(APIError):
    def __init__(self, message: str = "Conflict") -> None:
        super().__init__(message, status_code=HTTPStatus.CONFLICT, code="conflict")


class Unauthorized(APIError):
    """401 when authentication fails.

    ``code`` carries the failure kind so callers can tell, for example, a
    compromised session from a plain invalid refresh token.
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        *,
        code: str = "unauthorized",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(message, status_code=HTTPStatus.UNAUTHORIZED, code=code, headers=headers)


class Forbidden(APIError):
    """403 for a rejected anti-forgery token or a missing authority."""

    def __init__(self, message: str = "Forbidden", *, code: str = "forbidden") -> None:
        super().__init__(message, status_code=HTTPStatus.FORBIDDEN, code=code)


def init_app(app: Flask) -> None:
    """
    Attach JSON error handlers to the Flask app.

    Notes
    -----
    - Every handled error is an ``application/problem+json`` body.
    - Store outages (database or Redis) surface as 503, never as a 401, so
      a client does not mistake an outage for a dead session.
    - 5xx are logged with ``exc_info``; 4xx as warnings.
    """

    def _respond(problem: dict[str, Any], headers: dict[str, str] | None = None):
        status = problem["status"]
        level = log.error if status >= 500 else log.warning
        level(
            "problem code=%s status=%s detail=%s",
            problem["code"],
            status,
            problem["detail"],
            exc_info=status >= 500,
        )
        return _problem_response(problem, headers), status

    @app.errorhandler(APIError)
    def handle_api_error(err: APIError):
        return _respond(err.to_problem(), err.headers)

    @app.errorhandler(HTTPException)
    def handle_http_exception(err: HTTPException):
        status = int(err.code or HTTPStatus.INTERNAL_SERVER_ERROR)
        error_code = _STATUS_CODES.get(status, "error")
        message = (err.description or error_code.replace("_", " ").capitalize()).strip()
        if status == HTTPStatus.NOT_FOUND:
            message = f"Route '{request.path}' not found"
        return _respond(_as_problem(status=status, code=error_code, message=message))

    @app.errorhandler(MarshmallowValidationError)
    def handle_validation_error(err: MarshmallowValidationError):
        return _respond(
            _as_problem(
                status=HTTPStatus.UNPROCESSABLE_ENTITY,
                code="validation_error",
                message="Validation failed",
                details={"errors": err.messages},
            )
        )

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(err: IntegrityError):
        # raw DB errors never reach clients
        return _respond(_as_problem(status=HTTPStatus.CONFLICT, code="conflict", message="Resource conflict"))

    @app.errorhandler(OperationalError)
    @app.errorhandler(RedisError)
    def handle_store_unavailable(err: Exception):
        return _respond(
            _as_problem(
                status=HTTPStatus.SERVICE_UNAVAILABLE,
                code="service_unavailable",
                message="Session store temporarily unavailable",
            )
        )

    @app.errorhandler(Exception)
    def handle_unexpected_error(err: Exception):
        return _respond(
            _as_problem(
                status=HTTPStatus.INTERNAL_SERVER_ERROR,
                code="internal_server_error",
                message="Unexpected error",
            )
        )
