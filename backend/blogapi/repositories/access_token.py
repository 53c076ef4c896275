"""Repository for :class:`AccessToken` rows, including conditional revocation."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, update

from blogapi.models.access_token import AccessToken
from blogapi.repositories.base import BaseRepository


class AccessTokenRepository(BaseRepository[AccessToken]):
    """Persistence-only repository for access-token records.

    Records are append-only apart from ``revoked_at``; there is no general
    update path.
    """

    model = AccessToken

    def _filterable_fields(self):
        return {
            "id": AccessToken.id,
            "user_id": AccessToken.user_id,
        }

    def revoke_if_active(self, token_id: str, now: datetime) -> bool:
        """Set ``revoked_at`` only when the record is still active.

        Issues ``UPDATE ... WHERE id = :id AND revoked_at IS NULL`` so that
        concurrent callers race on the database row; exactly one of them sees
        ``rowcount == 1``. Identity-map copies are left as they are; the
        Unit of Work commit expires them.

        :param token_id: Record id (the access token ``jti``).
        :param now: Revocation instant (aware UTC).
        :returns: ``True`` when this call performed the revocation.
        """
        stmt = (
            update(AccessToken)
            .where(AccessToken.id == token_id, AccessToken.revoked_at.is_(None))
            .values(revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def delete_expired(self, before: datetime) -> int:
        """Delete records whose ``expires_at`` is older than ``before``.

        :returns: Number of rows removed.
        """
        stmt = (
            delete(AccessToken)
            .where(AccessToken.expires_at < before)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return int(result.rowcount or 0)
