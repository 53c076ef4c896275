"""
Domain-level exceptions used within the service layer.

These exceptions never depend on Flask or HTTP. The translation to RFC 7807
responses happens in ``BaseService.translate_exceptions()``.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError


def violates(exc: IntegrityError, constraint_name: str) -> bool:
    """
    Check whether an IntegrityError originates from a specific constraint.

    Parameters
    ----------
    exc : IntegrityError
        The exception raised by SQLAlchemy during flush/commit.
    constraint_name : str
        Constraint to match (e.g. ``'uq_users_email'``).

    Notes
    -----
    PostgreSQL reports the constraint name; SQLite reports the column
    (``users.email``), so the column suffix of the name is matched too.
    """
    message = str(exc.orig).lower() if exc.orig else ""
    name = constraint_name.lower()
    if name in message:
        return True
    # uq_<table>_<column> -> "<table>.<column>"
    parts = name.split("_", 2)
    if len(parts) == 3 and parts[0] == "uq":
        return f"{parts[1]}.{parts[2]}" in message
    return False


# --------------------------------------------------------------------------- #
# Base types
# --------------------------------------------------------------------------- #


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    These are *not* HTTP errors; ``BaseService.translate_exceptions`` maps
    them to ``APIError`` at the API boundary.
    """


# --------------------------------------------------------------------------- #
# Specific domain-level errors
# --------------------------------------------------------------------------- #


@dataclass(slots=True)
class NotFoundError(ServiceError):
    """
    Raised when an entity is not found in the repository.

    :param entity: Entity name (e.g., "User").
    :param key: Identifier or search key.
    """

    entity: str
    key: str | int

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.entity} not found: {self.key}"


@dataclass(slots=True)
class ConflictError(ServiceError):
    """
    Raised when a unique constraint or business rule conflict occurs.

    :param entity: Entity name (e.g., "User").
    :param detail: Short human-readable explanation.
    """

    entity: str
    detail: str

    def __str__(self) -> str:  # pragma: no cover
        return f"Conflict on {self.entity}: {self.detail}"


class AuthorizationError(ServiceError):
    """Raised when the caller is authenticated but lacks permission (scope)."""


class InvalidCredentials(ServiceError):
    """Password grant failed. The message never says which part was wrong."""

    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(message)


class InvalidRefreshToken(ServiceError):
    """
    Refresh token rejected.

    Every cause (undecryptable, malformed, unknown, revoked, expired, owner
    gone, lost rotation race) surfaces with the same message; ``reason`` is
    for logs only.
    """

    def __init__(self, reason: str = "invalid") -> None:
        super().__init__("Invalid refresh token")
        self.reason = reason


class StructuralTokenInvalid(ServiceError):
    """Token failed signature, format or expiry verification."""

    def __init__(self, message: str = "Invalid token") -> None:
        super().__init__(message)


class StorePersistenceFailure(ServiceError):
    """The token store could not durably write a record."""

    def __init__(self, message: str = "Token store unavailable") -> None:
        super().__init__(message)


class InvalidVerificationToken(ServiceError):
    """Email-verification token is undecryptable, malformed or stale."""

    def __init__(self, message: str = "Invalid verification token") -> None:
        super().__init__(message)


class EmailAlreadyVerified(ServiceError):
    """Verification requested or redeemed for an already verified address."""

    def __init__(self, message: str = "Email address is already verified") -> None:
        super().__init__(message)
