"""Authentication endpoints: login, rotation and logout over HttpOnly cookies."""

from __future__ import annotations

from flask import Blueprint, current_app, g, request

from silentauth.api.deps import (
    clear_auth_cookies,
    components,
    current_access,
    json_response,
    read_refresh_token,
    require_access_token,
    require_anti_forgery,
    set_anti_forgery_cookie,
    set_bundle_cookies,
    timing,
    translate_service_errors,
)
from silentauth.core.extensions import limiter
from silentauth.schemas import (
    AntiForgeryTokenSchema,
    FederatedLoginSchema,
    LoginSchema,
    LogoutAllResultSchema,
    TokenBundleSchema,
)
from silentauth.services.issuance import TokenBundleOut

bp = Blueprint("auth", __name__, url_prefix="/auth")

login_schema = LoginSchema()
federated_schema = FederatedLoginSchema()
anti_forgery_schema = AntiForgeryTokenSchema()
bundle_schema = TokenBundleSchema()
logout_all_schema = LogoutAllResultSchema()


def _login_rate_limit() -> str:
    return str(current_app.config.get("AUTH_LOGIN_RATE_LIMIT", "10 per minute"))


def _bundle_response(bundle: TokenBundleOut, *, status: int = 200):
    response = json_response({"data": bundle_schema.dump(bundle)}, status=status)
    set_bundle_cookies(response, bundle)
    return response


@bp.get("/csrf")
@timing
def anti_forgery_token():
    """Issue an anonymous anti-forgery token for pre-login forms."""

    issued = components().anti_forgery.issue_anonymous()
    response = json_response({"data": anti_forgery_schema.dump(issued)})
    set_anti_forgery_cookie(response, issued.token)
    return response


@bp.post("/login")
@limiter.limit(_login_rate_limit)
@timing
@translate_service_errors
@require_anti_forgery(
    require_session=False,
    check_liveness=False,
    enabled_by="ANTI_FORGERY_REQUIRED_ON_LOGIN",
)
def login():
    """Validate email/password and open a new session."""

    data = login_schema.load(request.get_json(silent=True) or {})
    security = components()
    principal = security.credentials.verify_password(data["email"], data["password"])
    return _bundle_response(security.issuance.login(principal))


@bp.post("/federated/<string:provider>")
@limiter.limit(_login_rate_limit)
@timing
@translate_service_errors
@require_anti_forgery(
    require_session=False,
    check_liveness=False,
    enabled_by="ANTI_FORGERY_REQUIRED_ON_LOGIN",
)
def login_federated(provider: str):
    """Exchange a provider-signed assertion for a new session."""

    data = federated_schema.load(request.get_json(silent=True) or {})
    security = components()
    principal = security.credentials.verify_federated(provider, data["assertion"])
    return _bundle_response(security.issuance.login(principal))


@bp.post("/token/refresh")
@timing
@translate_service_errors
@require_anti_forgery(require_session=True, check_liveness=False, allow_expired=True)
def refresh():
    """Rotate the refresh cookie and return a fresh bundle for the same session."""

    bundle = components().issuance.refresh(
        read_refresh_token(),
        anti_forgery_session_id=g.anti_forgery.sid,
    )
    return _bundle_response(bundle)


@bp.post("/token/logout")
@timing
@translate_service_errors
@require_anti_forgery(require_session=True, check_liveness=False, allow_expired=True)
def logout():
    """Revoke the caller's session and clear every auth cookie. Idempotent."""

    components().issuance.logout(g.anti_forgery.sid)
    response = current_app.response_class(status=204)
    clear_auth_cookies(response)
    return response


@bp.post("/token/logout-all")
@timing
@translate_service_errors
@require_access_token
@require_anti_forgery(require_session=True, bind_access_session=True)
def logout_all():
    """Revoke every session of the authenticated principal."""

    revoked = components().issuance.logout_all(current_access().principal_id)
    response = json_response({"data": logout_all_schema.dump({"revoked": revoked})})
    clear_auth_cookies(response)
    return response
