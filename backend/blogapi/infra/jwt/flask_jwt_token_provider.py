from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, cast

from flask_jwt_extended.exceptions import JWTExtendedException
from jwt.exceptions import PyJWTError

from blogapi.services._shared.errors import StructuralTokenInvalid
from blogapi.services._shared.ports import TokenProvider


@dataclass(slots=True)
class JWTTokenProvider(TokenProvider):
    """
    Adapter for Flask-JWT-Extended.

    The service supplies the complete claim set; ``iat``, ``exp`` and
    ``jti`` override the values the library would generate so the token
    and its store record agree.

    .. note::
       Requires an active Flask app context with JWT settings.
    """

    def sign(self, claims: dict[str, Any]) -> str:
        from flask_jwt_extended import create_access_token as _create_access
        from flask_jwt_extended import decode_token as _decode

        extra = dict(claims)
        identity = extra.pop("sub")
        lifetime = timedelta(seconds=int(extra["exp"]) - int(extra["iat"]))

        token = cast(
            str,
            _create_access(
                identity=identity,
                additional_claims=extra,
                expires_delta=lifetime,
            ),
        )

        # The record is keyed by jti; fail fast if the library replaced ours.
        actual = cast(dict[str, Any], _decode(token))["jti"]
        if actual != claims["jti"]:
            raise RuntimeError("Access token jti mismatch after creation.")

        return token

    def decode(self, token: str) -> dict[str, Any]:
        from flask_jwt_extended import decode_token

        try:
            return cast(dict[str, Any], decode_token(token))
        except (PyJWTError, JWTExtendedException) as exc:
            raise StructuralTokenInvalid() from exc
