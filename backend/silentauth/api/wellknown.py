"""Public key discovery for downstream resource guards."""

from __future__ import annotations

from flask import Blueprint

from silentauth.api.deps import components, json_response

bp = Blueprint("wellknown", __name__)


@bp.get("/jwks.json")
def jwks():
    """Publish every verification key as a JWK Set."""

    response = json_response(components().codec.jwks())
    response.headers["Cache-Control"] = "public, max-age=300"
    return response
