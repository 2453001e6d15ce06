"""Protected reads about the authenticated caller."""

from __future__ import annotations

from dataclasses import asdict

from flask import Blueprint

from silentauth.api.deps import (
    components,
    current_access,
    json_response,
    require_access_token,
    timing,
    translate_service_errors,
)
from silentauth.schemas import SessionSchema, WhoAmISchema

bp = Blueprint("me", __name__, url_prefix="/me")

whoami_schema = WhoAmISchema()
sessions_schema = SessionSchema(many=True)


@bp.get("")
@timing
@translate_service_errors
@require_access_token
def whoami():
    """Return the identity carried by the access token."""

    return json_response({"data": whoami_schema.dump(current_access())})


@bp.get("/sessions")
@timing
@translate_service_errors
@require_access_token
def sessions():
    """List the caller's live sessions, flagging the current one."""

    access = current_access()
    views = components().issuance.list_sessions(access.principal_id)
    rows = [{**asdict(view), "current": view.session_id == access.session_id} for view in views]
    return json_response({"data": sessions_schema.dump(rows)})
