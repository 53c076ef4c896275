from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum, auto
from typing import Protocol


class RotationResult(Enum):
    """Outcome of an atomic revoke-old/create-new rotation."""

    OK = auto()
    NOT_FOUND = auto()
    REVOKED = auto()


@dataclass(frozen=True, slots=True)
class NewAccessToken:
    """
    Record to persist for a freshly signed access token.

    :ivar id: The token ``jti``.
    :ivar user_id: Owner user id.
    :ivar scope: Space-delimited granted scopes.
    :ivar expires_at: Absolute expiry (aware UTC).
    :ivar user_ip: Client address at issuance, if known.
    """

    id: str
    user_id: int
    scope: str
    expires_at: datetime
    user_ip: str | None = None


@dataclass(frozen=True, slots=True)
class AccessTokenView:
    """Read-model of a stored access-token record."""

    id: str
    user_id: int
    scope: str
    expires_at: datetime
    revoked_at: datetime | None = None
    user_ip: str | None = None
    created_at: datetime | None = None

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_expired(self, now: datetime) -> bool:
        """A record whose expiry equals ``now`` is already expired."""
        return self.expires_at <= now


class AccessTokenStore(Protocol):
    """
    Durable store of access-token records.

    Implementations MUST make :meth:`revoke` and :meth:`rotate` atomic per
    record: the transition from active to revoked happens at most once, and
    the first ``revoked_at`` is kept. Write failures raise
    :class:`~blogapi.services._shared.errors.StorePersistenceFailure`.
    """

    def create(self, record: NewAccessToken) -> AccessTokenView:
        """Insert a new active record. The id must not exist yet."""

    def get(self, token_id: str) -> AccessTokenView | None: ...

    def revoke(self, token_id: str, *, now: datetime) -> bool:
        """
        Revoke if still active.

        :returns: ``True`` when this call performed the revocation; ``False``
            when the record is unknown or was already revoked.
        """

    def rotate(self, *, old_id: str, new: NewAccessToken, now: datetime) -> RotationResult:
        """
        Revoke ``old_id`` (only if active) and create ``new`` as one atomic step.

        Nothing is created unless the result is ``RotationResult.OK``.
        """

    def delete(self, token_id: str) -> bool: ...

    def purge_expired(self, *, before: datetime) -> int:
        """Delete records with ``expires_at < before``. :returns: count removed."""


class InMemoryAccessTokenStore(AccessTokenStore):
    """
    Dict-backed store for unit tests.

    .. note::
       A single lock makes revoke/rotate atomic across threads.
    """

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._records: dict[str, AccessTokenView] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def create(self, record: NewAccessToken) -> AccessTokenView:
        with self._lock:
            return self._insert(record)

    def _insert(self, record: NewAccessToken) -> AccessTokenView:
        if record.id in self._records:
            raise ValueError(f"Duplicate access token id: {record.id}")
        view = AccessTokenView(
            id=record.id,
            user_id=record.user_id,
            scope=record.scope,
            expires_at=record.expires_at,
            user_ip=record.user_ip,
            created_at=self._clock() if self._clock else None,
        )
        self._records[record.id] = view
        return view

    def get(self, token_id: str) -> AccessTokenView | None:
        with self._lock:
            return self._records.get(token_id)

    def revoke(self, token_id: str, *, now: datetime) -> bool:
        with self._lock:
            return self._revoke(token_id, now) is RotationResult.OK

    def _revoke(self, token_id: str, now: datetime) -> RotationResult:
        current = self._records.get(token_id)
        if current is None:
            return RotationResult.NOT_FOUND
        if current.is_revoked:
            return RotationResult.REVOKED
        self._records[token_id] = replace(current, revoked_at=now)
        return RotationResult.OK

    def rotate(self, *, old_id: str, new: NewAccessToken, now: datetime) -> RotationResult:
        with self._lock:
            result = self._revoke(old_id, now)
            if result is RotationResult.OK:
                self._insert(new)
            return result

    def delete(self, token_id: str) -> bool:
        with self._lock:
            return self._records.pop(token_id, None) is not None

    def purge_expired(self, *, before: datetime) -> int:
        with self._lock:
            stale = [k for k, v in self._records.items() if v.expires_at < before]
            for key in stale:
                del self._records[key]
            return len(stale)

    def __len__(self) -> int:
        return len(self._records)
