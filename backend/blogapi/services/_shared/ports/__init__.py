"""
blogapi.services._shared.ports
==============================

Hexagonal ports the token service depends on, with in-memory
implementations for unit tests. Concrete adapters live under
``blogapi.infra``.

Modules
-------
- :mod:`token_provider`: :class:`~.TokenProvider`, signing and structural
  verification of access tokens.
- :mod:`token_cipher`: :class:`~.TokenCipher`, authenticated encryption of
  refresh and email-verification tokens.
- :mod:`access_token_store`: :class:`~.AccessTokenStore`,
  :class:`~.RotationResult` and the record value objects.
- :mod:`user_lookup`: :class:`~.UserLookup` and :class:`~.UserSnapshot`.
"""

from __future__ import annotations

from .access_token_store import (
    AccessTokenStore,
    AccessTokenView,
    InMemoryAccessTokenStore,
    NewAccessToken,
    RotationResult,
)
from .token_cipher import TokenCipher
from .token_provider import StubTokenProvider, TokenProvider
from .user_lookup import InMemoryUserLookup, UserLookup, UserSnapshot

__all__ = [
    "AccessTokenStore",
    "AccessTokenView",
    "InMemoryAccessTokenStore",
    "InMemoryUserLookup",
    "NewAccessToken",
    "RotationResult",
    "StubTokenProvider",
    "TokenCipher",
    "TokenProvider",
    "UserLookup",
    "UserSnapshot",
]
