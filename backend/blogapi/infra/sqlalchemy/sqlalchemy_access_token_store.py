from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError

from blogapi.models.access_token import AccessToken
from blogapi.services._shared.errors import StorePersistenceFailure
from blogapi.services._shared.ports import (
    AccessTokenStore,
    AccessTokenView,
    NewAccessToken,
    RotationResult,
)
from blogapi.uow.sqlalchemy_uow import (
    SQLAlchemyReadOnlyUnitOfWork,
    SQLAlchemyRepositoryContainer,
    SQLAlchemyUnitOfWork,
)

log = logging.getLogger(__name__)

T = TypeVar("T")


def _view(row: AccessToken) -> AccessTokenView:
    return AccessTokenView(
        id=row.id,
        user_id=row.user_id,
        scope=row.scope,
        expires_at=row.expires_at,
        revoked_at=row.revoked_at,
        user_ip=row.user_ip,
        created_at=row.created_at,
    )


def _row(record: NewAccessToken) -> AccessToken:
    return AccessToken(
        id=record.id,
        user_id=record.user_id,
        scope=record.scope,
        expires_at=record.expires_at,
        user_ip=record.user_ip,
    )


class SQLAlchemyAccessTokenStore(AccessTokenStore):
    """
    Relational :class:`AccessTokenStore` over the ``access_tokens`` table.

    Reads run in a read-only Unit of Work, so validating a token never
    commits; each write runs in its own read-write Unit of Work. Revocation
    is a conditional ``UPDATE ... WHERE revoked_at IS NULL``; rotation performs
    that update and the insert of the replacement in the same transaction.
    Any SQLAlchemy error is logged and re-raised as
    :class:`StorePersistenceFailure`.

    :param uow_factory: Builds the writing Unit of Work; defaults to
        :class:`SQLAlchemyUnitOfWork`.
    :param read_uow_factory: Builds the reading Unit of Work; defaults to
        :class:`SQLAlchemyReadOnlyUnitOfWork`.
    """

    def __init__(
        self,
        uow_factory: Callable[[], SQLAlchemyUnitOfWork] | None = None,
        read_uow_factory: Callable[[], SQLAlchemyReadOnlyUnitOfWork] | None = None,
    ) -> None:
        self._uow_factory = uow_factory or SQLAlchemyUnitOfWork
        self._read_uow_factory = read_uow_factory or SQLAlchemyReadOnlyUnitOfWork

    def _run(
        self,
        op: str,
        fn: Callable[[SQLAlchemyRepositoryContainer], T],
        *,
        readonly: bool = False,
    ) -> T:
        factory = self._read_uow_factory if readonly else self._uow_factory
        try:
            with factory() as uow:
                return fn(uow)
        except SQLAlchemyError as exc:
            log.error("token_store.%s.failed", op, exc_info=True)
            raise StorePersistenceFailure() from exc

    def create(self, record: NewAccessToken) -> AccessTokenView:
        def _create(uow: SQLAlchemyRepositoryContainer) -> AccessTokenView:
            return _view(uow.access_tokens.add(_row(record)))

        return self._run("create", _create)

    def get(self, token_id: str) -> AccessTokenView | None:
        def _get(uow: SQLAlchemyRepositoryContainer) -> AccessTokenView | None:
            row = uow.access_tokens.get(token_id)
            return _view(row) if row is not None else None

        return self._run("get", _get, readonly=True)

    def revoke(self, token_id: str, *, now: datetime) -> bool:
        return self._run("revoke", lambda uow: uow.access_tokens.revoke_if_active(token_id, now))

    def rotate(self, *, old_id: str, new: NewAccessToken, now: datetime) -> RotationResult:
        def _rotate(uow: SQLAlchemyRepositoryContainer) -> RotationResult:
            repo = uow.access_tokens
            if repo.revoke_if_active(old_id, now):
                repo.add(_row(new))
                return RotationResult.OK
            return RotationResult.REVOKED if repo.exists(id=old_id) else RotationResult.NOT_FOUND

        return self._run("rotate", _rotate)

    def delete(self, token_id: str) -> bool:
        def _delete(uow: SQLAlchemyRepositoryContainer) -> bool:
            row = uow.access_tokens.get(token_id)
            if row is None:
                return False
            uow.access_tokens.delete(row)
            return True

        return self._run("delete", _delete)

    def purge_expired(self, *, before: datetime) -> int:
        return self._run("purge_expired", lambda uow: uow.access_tokens.delete_expired(before))
