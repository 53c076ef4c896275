"""
DTOs for IdentityService.

DTOs keep ORM instances out of the API layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# --------------------------------------------------------------------------- #
# Input DTOs
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class UserRegisterIn:
    """
    Input DTO for user registration.

    :param email: Login email (normalized to lowercase by the model).
    :param password: Raw password to be hashed by the model.
    :param username: Public username.
    :param full_name: Optional display name.
    """

    email: str
    password: str
    username: str
    full_name: str | None = None


@dataclass(frozen=True, slots=True)
class UserAuthIn:
    """
    Input DTO for the password grant.

    :param login: Username or email address.
    :param password: Raw password.
    """

    login: str
    password: str


@dataclass(frozen=True, slots=True)
class UserUpdateIn:
    username: str | None = None
    full_name: str | None = None


# --------------------------------------------------------------------------- #
# Output DTOs
# --------------------------------------------------------------------------- #


@dataclass(frozen=True, slots=True)
class UserPublicOut:
    """
    Output DTO representing public-safe user data.

    :param id: User identifier.
    :param email: Email address.
    :param username: Username.
    :param full_name: Optional full name.
    :param email_verified_at: When the email was verified, if ever.
    """

    id: int
    email: str
    username: str
    full_name: str | None
    email_verified_at: datetime | None = None
