"""Repository package exposing persistence-layer access for all models."""

from __future__ import annotations

from blogapi.repositories.access_token import AccessTokenRepository
from blogapi.repositories.base import BaseRepository
from blogapi.repositories.user import UserRepository

__all__ = [
    "AccessTokenRepository",
    "BaseRepository",
    "UserRepository",
]
