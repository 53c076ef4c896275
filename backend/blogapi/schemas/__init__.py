"""Convenience exports for application schemas."""

from __future__ import annotations

from .auth import (
    EmailVerificationTokenSchema,
    TokenRequestSchema,
    TokenResponseSchema,
    VerifyEmailQuerySchema,
)
from .user import RegisterSchema, UserSchema, UserUpdateSchema

__all__ = [
    "EmailVerificationTokenSchema",
    "RegisterSchema",
    "TokenRequestSchema",
    "TokenResponseSchema",
    "UserSchema",
    "UserUpdateSchema",
    "VerifyEmailQuerySchema",
]
