"""Shared service primitives: request context, UoW factories, error translation."""

from __future__ import annotations

from dataclasses import dataclass

from blogapi.core import errors as api_errors
from blogapi.services._shared.errors import (
    AuthorizationError,
    ConflictError,
    InvalidCredentials,
    InvalidRefreshToken,
    NotFoundError,
    ServiceError,
    StorePersistenceFailure,
    StructuralTokenInvalid,
)
from blogapi.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyUnitOfWork,
)


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param actor_id: Authenticated user identifier.
    :param request_id: Correlation id for logging/tracing.
    """

    actor_id: int | None = None
    request_id: str | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Provide helpers to run read-only and read-write units of work.
    * Centralize translation of service errors into API errors.

    Notes
    -----
    Services never touch the global session directly; they go through a
    Unit of Work (or, for tokens, an ``AccessTokenStore`` port).
    """

    DEFAULT_READ_ISOLATION = "READ COMMITTED"

    def __init__(self, *, ctx: ServiceContext | None = None) -> None:
        self.ctx = ctx or ServiceContext()

    # -------------------------- UoW helpers ---------------------------------

    def rw_uow(self) -> SQLAlchemyUnitOfWork:
        return SQLAlchemyUnitOfWork()

    def ro_uow(
        self, *, isolation: str | None = None, enforce_db_readonly: bool = True
    ) -> SQLAlchemyReadOnlyUnitOfWork:
        """
        Create a read-only Unit of Work.

        :param isolation: Transaction isolation level (e.g. "READ COMMITTED").
        :param enforce_db_readonly: Apply ``SET TRANSACTION READ ONLY`` when supported.
        """
        return SQLAlchemyReadOnlyUnitOfWork(
            isolation_level=isolation or self.DEFAULT_READ_ISOLATION,
            enforce_db_readonly=enforce_db_readonly,
        )

    # -------------------------- Error handling ------------------------------

    def translate_exceptions(self, exc: Exception) -> Exception:
        """
        Map service-level errors to API-level (HTTP) errors.

        :param exc: Exception raised within the service.
        :returns: Translated exception ready to be re-raised. Anything that
            is not a :class:`ServiceError` is returned untouched.
        """
        if isinstance(exc, NotFoundError):
            return api_errors.NotFound(str(exc))

        if isinstance(exc, ConflictError):
            return api_errors.Conflict(str(exc))

        if isinstance(exc, (InvalidCredentials, InvalidRefreshToken)):
            return api_errors.InvalidGrant(str(exc))

        if isinstance(exc, StructuralTokenInvalid):
            return api_errors.Unauthorized(str(exc))

        if isinstance(exc, AuthorizationError):
            return api_errors.Forbidden(str(exc), code="insufficient_scope")

        if isinstance(exc, StorePersistenceFailure):
            # Never leak storage details to clients
            return api_errors.APIError(
                message="Unexpected error",
                status_code=500,
                code="internal_server_error",
            )

        if isinstance(exc, ServiceError):
            return api_errors.APIError(
                message=str(exc),
                status_code=400,
                code="bad_request",
            )

        return exc
