from __future__ import annotations

from typing import Protocol


class TokenCipher(Protocol):
    """
    Port for authenticated symmetric encryption of opaque tokens.

    Used for refresh tokens and email-verification tokens. Ciphertexts are
    URL-safe strings; tampering or a wrong key makes :meth:`decrypt` return
    ``None`` rather than raise.
    """

    def encrypt(self, plaintext: bytes) -> str: ...

    def decrypt(self, token: str, *, ttl: int | None = None) -> bytes | None:
        """
        :param ttl: Reject ciphertexts older than ``ttl`` seconds.
        :returns: Plaintext, or ``None`` when the token is invalid or stale.
        """
