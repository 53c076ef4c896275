from __future__ import annotations

import threading
from typing import Any, Protocol

from blogapi.services._shared.errors import StructuralTokenInvalid


class TokenProvider(Protocol):
    """Port for signing and structurally verifying access tokens."""

    def sign(self, claims: dict[str, Any]) -> str:
        """
        Sign a complete claim set.

        ``claims`` carries ``sub``, ``jti``, ``iat`` and ``exp`` (epoch
        seconds) plus any custom claims; the provider must not replace them.
        """

    def decode(self, token: str) -> dict[str, Any]:
        """
        Verify signature, format and expiry, returning the claims.

        :raises StructuralTokenInvalid: On any verification failure.
        """


class StubTokenProvider(TokenProvider):
    """Deterministic, unsigned provider used in unit tests."""

    def __init__(self) -> None:
        self._seq = 0
        self._issued: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def sign(self, claims: dict[str, Any]) -> str:
        with self._lock:
            self._seq += 1
            token = f"stub.{claims.get('sub')}.{claims.get('jti')}.{self._seq}"
            self._issued[token] = dict(claims)
            return token

    def decode(self, token: str) -> dict[str, Any]:
        with self._lock:
            claims = self._issued.get(token)
        if claims is None:
            raise StructuralTokenInvalid()
        return dict(claims)
