"""Authentication-related Marshmallow schemas."""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class LoginSchema(Schema):
    """Input payload for password login."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    password = fields.String(required=True, validate=validate.Length(min=1, max=128))


class FederatedLoginSchema(Schema):
    """Input payload carrying a provider-signed assertion (ID token)."""

    assertion = fields.String(required=True, validate=validate.Length(min=1, max=16384))


class AntiForgeryTokenSchema(Schema):
    """Anti-forgery token returned to the client for header echoing."""

    anti_forgery_token = fields.String(required=True, attribute="token")
    scope = fields.Function(lambda obj: obj.scope.value)
    expires_at = fields.DateTime(required=True)


class TokenBundleSchema(Schema):
    """Public part of a token bundle.

    The refresh token is never serialized; it travels only in its
    HttpOnly cookie.
    """

    access_token = fields.String(required=True)
    token_type = fields.Constant("bearer")
    anti_forgery_token = fields.String(required=True)
    session_id = fields.String(required=True)
    principal_id = fields.String(required=True)
    access_expires_at = fields.DateTime(required=True)
    refresh_expires_at = fields.DateTime(required=True)


class WhoAmISchema(Schema):
    """Identity derived from the caller's access token."""

    principal_id = fields.String(required=True)
    session_id = fields.String(required=True)
    roles = fields.List(fields.String())
    expires_at = fields.DateTime(required=True)


class SessionSchema(Schema):
    """Session row as listed by ``/me/sessions``."""

    session_id = fields.String(required=True)
    created_at = fields.DateTime(required=True)
    revoked = fields.Boolean(required=True)
    revoked_at = fields.DateTime(allow_none=True)
    revoked_reason = fields.String(allow_none=True)
    current = fields.Boolean(dump_default=False)


class LogoutAllResultSchema(Schema):
    revoked = fields.Integer(required=True)
