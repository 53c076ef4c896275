"""Account endpoints: registration, profile and email verification."""

from __future__ import annotations

from flask import Blueprint, request

from blogapi.api.deps import (
    current_user_id,
    get_identity_service,
    json_response,
    require_scope,
    require_token,
    timing,
)
from blogapi.schemas import (
    EmailVerificationTokenSchema,
    RegisterSchema,
    UserSchema,
    UserUpdateSchema,
    VerifyEmailQuerySchema,
)
from blogapi.services._shared.errors import ServiceError
from blogapi.services.identity.dto import UserRegisterIn, UserUpdateIn

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
user_schema = UserSchema()
user_update_schema = UserUpdateSchema()
verification_token_schema = EmailVerificationTokenSchema()
verify_query_schema = VerifyEmailQuerySchema()


@bp.post("/register")
@timing
def register():
    """Register a new user and return the created representation."""

    payload = register_schema.load(request.get_json(silent=True) or {})
    service = get_identity_service()
    try:
        user = service.register_user(UserRegisterIn(**payload))
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response({"data": user_schema.dump(user)}, status=201)


@bp.get("/user")
@require_token
@timing
def whoami():
    """Return the authenticated user's profile."""

    service = get_identity_service()
    try:
        user = service.get_user(current_user_id())
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response({"data": user_schema.dump(user)})


@bp.patch("/user")
@require_token
@require_scope("write:profile")
@timing
def update_profile():
    payload = user_update_schema.load(request.get_json(silent=True) or {})
    service = get_identity_service()
    try:
        user = service.update_user(current_user_id(), UserUpdateIn(**payload))
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response({"data": user_schema.dump(user)})


@bp.post("/email/verify")
@require_token
@timing
def request_email_verification():
    """
    Create a verification token for the caller's email address.

    Mail delivery is not handled here; the token is returned in the body.
    """

    service = get_identity_service()
    try:
        token = service.request_email_verification(current_user_id())
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return json_response(verification_token_schema.dump({"token": token}), status=201)


@bp.get("/email/verify")
@timing
def verify_email():
    """Redeem a verification token (the link target sent to the user)."""

    args = verify_query_schema.load(request.args)
    service = get_identity_service()
    try:
        service.verify_email(args["token"])
    except ServiceError as exc:
        raise service.translate_exceptions(exc) from exc
    return "", 204
