"""Shared API helpers: service wiring, bearer authentication and responses."""

from __future__ import annotations

import functools
import time
from collections.abc import Callable
from datetime import timedelta
from typing import Any, TypeVar, cast

from flask import Response, current_app, jsonify, request
from flask_jwt_extended import get_jwt, get_jwt_identity, verify_jwt_in_request

from blogapi.core.errors import Forbidden, Unauthorized
from blogapi.core.extensions import get_redis
from blogapi.infra.crypto.fernet_token_cipher import FernetTokenCipher
from blogapi.infra.jwt.flask_jwt_token_provider import JWTTokenProvider
from blogapi.infra.redis.redis_access_token_store import RedisAccessTokenStore
from blogapi.infra.sqlalchemy.sqlalchemy_access_token_store import SQLAlchemyAccessTokenStore
from blogapi.services._shared.ports import AccessTokenStore
from blogapi.services.identity.service import IdentityService
from blogapi.services.tokens.dto import TokenConfig
from blogapi.services.tokens.scope_policy import ScopePolicy, parse_scope
from blogapi.services.tokens.service import TokenService

F = TypeVar("F", bound=Callable[..., Any])


# --------------------------------------------------------------------------- #
# Request context
# --------------------------------------------------------------------------- #


def client_ip() -> str | None:
    """Address of the caller (after ``ProxyFix`` when enabled)."""

    return request.remote_addr


def client_origin() -> str:
    """``scheme://host`` of the current request; issuer and audience of new tokens."""

    return f"{request.scheme}://{request.host}"


def request_payload() -> dict[str, Any]:
    """Return the JSON body or, failing that, the form body as a plain dict."""

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


# --------------------------------------------------------------------------- #
# Service wiring (process-wide singletons are cached on the app)
# --------------------------------------------------------------------------- #


def get_token_cipher() -> FernetTokenCipher:
    """Return the app-wide Fernet cipher for refresh and verification tokens."""

    cipher = current_app.extensions.get("token_cipher")
    if cipher is None:
        material = current_app.config.get("TOKEN_ENCRYPTION_KEY") or current_app.config[
            "JWT_SECRET_KEY"
        ]
        cipher = current_app.extensions.setdefault(
            "token_cipher", FernetTokenCipher.from_secret(material)
        )
    return cast(FernetTokenCipher, cipher)


def get_scope_policy() -> ScopePolicy:
    policy = current_app.extensions.get("scope_policy")
    if policy is None:
        policy = current_app.extensions.setdefault(
            "scope_policy", ScopePolicy.from_config(current_app.config)
        )
    return cast(ScopePolicy, policy)


def get_token_store() -> AccessTokenStore:
    """Select the access-token store from ``TOKEN_STORE_BACKEND``."""

    backend = str(current_app.config.get("TOKEN_STORE_BACKEND", "sqlalchemy")).lower()
    if backend == "redis":
        retention = timedelta(seconds=int(current_app.config.get("TOKEN_PURGE_GRACE_SECONDS", 86400)))
        return RedisAccessTokenStore(get_redis(), retention=retention)
    if backend == "sqlalchemy":
        return SQLAlchemyAccessTokenStore()
    raise RuntimeError(f"Unknown TOKEN_STORE_BACKEND: {backend!r}")


def get_identity_service() -> IdentityService:
    return IdentityService(
        cipher=get_token_cipher(),
        verification_ttl=int(current_app.config.get("EMAIL_VERIFICATION_TTL_SECONDS", 86400)),
    )


def get_token_service() -> TokenService:
    return TokenService(
        token_provider=JWTTokenProvider(),
        cipher=get_token_cipher(),
        store=get_token_store(),
        users=IdentityService(),
        scope_policy=get_scope_policy(),
        token_cfg=TokenConfig.from_mapping(current_app.config),
    )


# --------------------------------------------------------------------------- #
# Authentication / authorization
# --------------------------------------------------------------------------- #


def require_token(func: F) -> F:
    """
    Ensure the request carries a valid bearer token.

    The JWT is verified structurally first (signature, expiry); the decoded
    claims are then checked against the access-token store, which rejects
    revoked, unknown and IP-mismatched tokens.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        verify_jwt_in_request(optional=False)
        if not get_token_service().is_access_token_valid(get_jwt(), client_ip()):
            raise Unauthorized("Invalid token")
        return func(*args, **kwargs)

    return wrapper  # type: ignore[return-value]


def require_scope(required: str) -> Callable[[F], F]:
    """Ensure the verified JWT grants ``required`` in its ``scope`` claim."""

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            verify_jwt_in_request(optional=False)
            claims = get_jwt() or {}
            if required not in parse_scope(claims.get("scope")):
                raise Forbidden("Insufficient scope", code="insufficient_scope")
            return func(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator


def current_user_id() -> int:
    """Return the authenticated user's id from the ``sub`` claim."""

    return int(get_jwt_identity())


def current_token_id() -> str:
    return cast(str, get_jwt()["jti"])


# --------------------------------------------------------------------------- #
# Responses
# --------------------------------------------------------------------------- #


def json_response(payload: Any, *, status: int = 200) -> Response:
    """Return a JSON response enforcing a consistent MIME type."""

    response = jsonify(payload)
    response.status_code = status
    return response


def no_store(response: Response) -> Response:
    """Mark a response carrying credentials as non-cacheable."""

    response.headers["Cache-Control"] = "no-store"
    response.headers["Pragma"] = "no-cache"
    return response


def timing(func: F) -> F:
    """Decorator capturing handler execution time in milliseconds."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            elapsed_ms = (time.perf_counter() - start) * 1000
            request_endpoint = getattr(request, "endpoint", None)
            current_app.logger.debug(
                "request.elapsed",
                extra={"endpoint": request_endpoint, "elapsed_ms": round(elapsed_ms, 2)},
            )

    return wrapper  # type: ignore[return-value]
