"""OAuth2 token endpoint (password and refresh_token grants) and revocation."""

from __future__ import annotations

from flask import Blueprint, current_app

from blogapi.api.deps import (
    client_ip,
    client_origin,
    current_token_id,
    get_identity_service,
    get_token_service,
    json_response,
    no_store,
    request_payload,
    require_token,
    timing,
)
from blogapi.schemas import TokenRequestSchema, TokenResponseSchema
from blogapi.schemas.auth import PASSWORD_GRANT
from blogapi.services._shared.errors import ServiceError
from blogapi.services.identity.dto import UserAuthIn

bp = Blueprint("oauth", __name__)

token_request_schema = TokenRequestSchema()
token_response_schema = TokenResponseSchema()


@bp.post("/token")
@timing
def token():
    """Exchange credentials or a refresh token for a new token pair."""

    data = token_request_schema.load(request_payload())
    tokens = get_token_service()

    try:
        if data["grant_type"] == PASSWORD_GRANT:
            user = get_identity_service().authenticate(
                UserAuthIn(login=data["username"], password=data["password"])
            )
            scope = data["scope"]
            if not (scope or "").strip():
                scope = current_app.config.get("OAUTH_DEFAULT_SCOPE", "*")
            envelope = tokens.issue_token(
                user, scope, client_ip=client_ip(), origin=client_origin()
            )
        else:
            envelope = tokens.refresh(
                data["refresh_token"], client_ip=client_ip(), origin=client_origin()
            )
    except ServiceError as exc:
        raise tokens.translate_exceptions(exc) from exc

    return no_store(json_response(token_response_schema.dump(envelope.as_dict()), status=201))


@bp.post("/revoke")
@require_token
@timing
def revoke():
    """Revoke the presented access token together with its refresh token."""

    tokens = get_token_service()
    try:
        tokens.revoke(current_token_id())
    except ServiceError as exc:
        raise tokens.translate_exceptions(exc) from exc
    return "", 204
