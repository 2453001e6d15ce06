"""JSON logging for auth events, correlated by request id."""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from flask import Flask, has_request_context, request

REQUEST_ID_HEADER = "X-Request-ID"
INCOMING_ID_HEADERS = (REQUEST_ID_HEADER, "X-Correlation-ID")

# Kept in the WSGI environ so the id lives exactly as long as the request.
_ENVIRON_KEY = "silentauth.request_id"

# Identifier fields allowed onto a record; token values never are.
EVENT_FIELDS = ("event", "session_id", "principal_id", "kind", "endpoint", "elapsed_ms")


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with event fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - formatting logic
        payload: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "request_id": getattr(record, "request_id", None),
        }
        payload.update({key: getattr(record, key) for key in EVENT_FIELDS if hasattr(record, key)})
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # pragma: no cover - trivial
        record.request_id = ensure_request_id() if has_request_context() else None
        return True


def ensure_request_id() -> str:
    """Return the id of the current request, taking it from the caller's headers when sent."""

    if not has_request_context():
        return str(uuid4())
    environ = request.environ
    if _ENVIRON_KEY not in environ:
        sent = next((request.headers[h] for h in INCOMING_ID_HEADERS if request.headers.get(h)), None)
        environ[_ENVIRON_KEY] = sent or str(uuid4())
    return environ[_ENVIRON_KEY]


def configure_logging(level: str | int = "INFO") -> None:
    """Send every record to stdout as JSON at ``level``."""

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(RequestIdFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else level.upper()
    root.setLevel(level)


def log_event(
    logger: logging.Logger,
    event: str,
    *,
    level: int = logging.INFO,
    message: str | None = None,
    **fields: Any,
) -> None:
    """Emit a structured authentication event.

    ``fields`` must only carry identifiers (``session_id``, ``principal_id``,
    ``kind``); raw token values are never logged.
    """

    extra = {"event": event}
    extra.update({key: value for key, value in fields.items() if key in EVENT_FIELDS})
    logger.log(level, message or event, extra=extra)


def init_app(app: Flask) -> None:
    """Tag the app logger's records and echo the request id on every response."""

    app.logger.addFilter(RequestIdFilter())

    @app.after_request
    def _echo_request_id(response):  # pragma: no cover - integration glue
        response.headers.setdefault(REQUEST_ID_HEADER, ensure_request_id())
        return response


__all__ = ["configure_logging", "ensure_request_id", "init_app", "log_event"]
