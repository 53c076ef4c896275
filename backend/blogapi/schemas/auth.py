"""OAuth2 token endpoint and email-verification schemas."""

from __future__ import annotations

from marshmallow import EXCLUDE, Schema, ValidationError, fields, validate, validates_schema

PASSWORD_GRANT = "password"
REFRESH_TOKEN_GRANT = "refresh_token"


class TokenRequestSchema(Schema):
    """
    Input for ``POST /oauth/token``.

    Extra OAuth2 parameters (``client_id`` and friends) are ignored.
    """

    class Meta:
        unknown = EXCLUDE

    grant_type = fields.String(
        required=True,
        validate=validate.OneOf([PASSWORD_GRANT, REFRESH_TOKEN_GRANT]),
    )
    username = fields.String(load_default=None, validate=validate.Length(min=1, max=254))
    password = fields.String(load_default=None, validate=validate.Length(min=1, max=128))
    refresh_token = fields.String(load_default=None, validate=validate.Length(min=1, max=4096))
    scope = fields.String(load_default=None, validate=validate.Length(max=1024))

    @validates_schema
    def _require_grant_fields(self, data, **kwargs):
        if data.get("grant_type") == PASSWORD_GRANT:
            missing = [k for k in ("username", "password") if not data.get(k)]
        elif data.get("grant_type") == REFRESH_TOKEN_GRANT:
            missing = [] if data.get("refresh_token") else ["refresh_token"]
        else:
            return
        if missing:
            raise ValidationError({k: ["Missing data for required field."] for k in missing})


class TokenResponseSchema(Schema):
    """Token envelope; the key set is fixed."""

    token_type = fields.String(required=True)
    access_token = fields.String(required=True)
    refresh_token = fields.String(required=True)
    expires_in = fields.Integer(required=True)
    scope = fields.String(required=True)


class EmailVerificationTokenSchema(Schema):
    token = fields.String(required=True)


class VerifyEmailQuerySchema(Schema):
    """Query string of ``GET /auth/email/verify``."""

    class Meta:
        unknown = EXCLUDE

    token = fields.String(required=True, validate=validate.Length(min=1))
