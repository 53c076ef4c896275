"""User resource schemas."""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validate, validates_schema

USERNAME_PATTERN = r"^[A-Za-z0-9_.-]+$"


class RegisterSchema(Schema):
    """Input payload for account registration."""

    email = fields.Email(required=True, validate=validate.Length(max=254))
    username = fields.String(
        required=True,
        validate=[validate.Length(min=3, max=50), validate.Regexp(USERNAME_PATTERN)],
    )
    password = fields.String(required=True, validate=validate.Length(min=8, max=128))
    full_name = fields.String(load_default=None, validate=validate.Length(max=100))


class UserUpdateSchema(Schema):
    """Partial profile update; at least one field is required."""

    username = fields.String(
        validate=[validate.Length(min=3, max=50), validate.Regexp(USERNAME_PATTERN)],
    )
    full_name = fields.String(allow_none=False, validate=validate.Length(max=100))

    @validates_schema
    def _not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError("Provide at least one field to update.")


class UserSchema(Schema):
    """Public representation of a user."""

    id = fields.Integer(required=True)
    email = fields.Email(required=True)
    username = fields.String(required=True)
    full_name = fields.String(allow_none=True)
    email_verified_at = fields.DateTime(allow_none=True)
    email_verified = fields.Function(lambda u: u.email_verified_at is not None)
