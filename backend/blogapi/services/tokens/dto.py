"""DTOs for TokenService."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

BEARER = "Bearer"


@dataclass(frozen=True, slots=True)
class TokenEnvelope:
    """
    Token pair returned to the client by the token endpoint.

    :param access_token: Signed access token.
    :param refresh_token: Encrypted, opaque refresh token.
    :param expires_in: Access token lifetime in seconds.
    :param scope: Space-delimited granted scopes (possibly empty).
    :param token_type: Always ``"Bearer"``.
    """

    access_token: str
    refresh_token: str
    expires_in: int
    scope: str
    token_type: str = BEARER

    def as_dict(self) -> dict[str, Any]:
        return {
            "token_type": self.token_type,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "scope": self.scope,
        }


@dataclass(frozen=True, slots=True)
class TokenConfig:
    """
    Token emission configuration.

    :param access_ttl: Lifetime of the access token and its store record.
        A refresh token can only be redeemed while that record is unexpired.
    :param purge_grace: How long expired records are kept before
        :meth:`TokenService.purge_expired` removes them.
    """

    access_ttl: timedelta = timedelta(seconds=600)
    purge_grace: timedelta = timedelta(days=1)

    @classmethod
    def from_mapping(cls, config: Any) -> TokenConfig:
        """Build from a Flask-style config mapping."""
        return cls(
            access_ttl=timedelta(seconds=int(config.get("ACCESS_TOKEN_TTL_SECONDS", 600))),
            purge_grace=timedelta(seconds=int(config.get("TOKEN_PURGE_GRACE_SECONDS", 86400))),
        )
