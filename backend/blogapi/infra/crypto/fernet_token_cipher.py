from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass

from cryptography.fernet import Fernet, InvalidToken

from blogapi.services._shared.ports import TokenCipher

log = logging.getLogger(__name__)


@dataclass(slots=True)
class FernetTokenCipher(TokenCipher):
    """
    :class:`TokenCipher` backed by ``cryptography``'s Fernet (AES-CBC + HMAC).

    Fernet tokens embed their creation time, which is what
    ``decrypt(..., ttl=...)`` checks.
    """

    fernet: Fernet

    @staticmethod
    def derive_key(key_material: str) -> bytes:
        """Stretch arbitrary secret text into a 32-byte urlsafe Fernet key."""
        return base64.urlsafe_b64encode(hashlib.sha256(key_material.encode()).digest())

    @classmethod
    def from_secret(cls, key_material: str) -> FernetTokenCipher:
        if not key_material:
            raise RuntimeError("Token encryption key is not configured.")
        return cls(Fernet(cls.derive_key(key_material)))

    def encrypt(self, plaintext: bytes) -> str:
        return self.fernet.encrypt(plaintext).decode("ascii")

    def decrypt(self, token: str, *, ttl: int | None = None) -> bytes | None:
        try:
            return self.fernet.decrypt(token.encode("ascii"), ttl=ttl)
        except (InvalidToken, UnicodeEncodeError):
            log.debug("token_decrypt_failed")
            return None
