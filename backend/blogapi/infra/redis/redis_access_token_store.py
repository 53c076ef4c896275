from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import redis  # type: ignore[import-untyped]

from blogapi.services._shared.errors import StorePersistenceFailure
from blogapi.services._shared.ports import (
    AccessTokenStore,
    AccessTokenView,
    NewAccessToken,
    RotationResult,
)

log = logging.getLogger(__name__)


def _s(raw: Any, default: str = "") -> str:
    if raw is None:
        return default
    return raw.decode() if isinstance(raw, bytes | bytearray) else str(raw)


def _dt(raw: Any) -> datetime | None:
    value = _s(raw)
    return datetime.fromisoformat(value) if value else None


@dataclass(slots=True)
class RedisAccessTokenStore(AccessTokenStore):
    """
    Redis-backed access-token store.

    Each record is a hash at ``at:<id>``; ``at:exp`` is a sorted set of ids
    scored by expiry for :meth:`purge_expired`. Keys also carry a Redis TTL of
    ``expires_at + retention`` so abandoned records disappear on their own.

    Revocation and rotation use WATCH/MULTI/EXEC optimistic transactions:
    the active→revoked transition commits only if nobody touched the record
    in between, otherwise the check is retried.

    :param r: A Redis client (already connected).
    :param retention: How long a record outlives its expiry.
    """

    EXPIRY_INDEX = "at:exp"

    r: redis.Redis
    retention: timedelta = timedelta(days=1)

    # -------------------- helpers --------------------

    @staticmethod
    def _k(token_id: str) -> str:
        return f"at:{token_id}"

    def _stage_create(self, p: Any, record: NewAccessToken, now: datetime) -> None:
        key = self._k(record.id)
        mapping = {
            "user_id": str(record.user_id),
            "scope": record.scope,
            "expires_at": record.expires_at.astimezone(UTC).isoformat(),
            "created_at": now.astimezone(UTC).isoformat(),
        }
        if record.user_ip is not None:
            mapping["user_ip"] = record.user_ip
        p.hset(key, mapping=mapping)
        p.expireat(key, int((record.expires_at + self.retention).timestamp()) + 1)
        p.zadd(self.EXPIRY_INDEX, {record.id: record.expires_at.timestamp()})

    def _to_view(self, token_id: str, h: dict[Any, Any]) -> AccessTokenView:
        def field(name: str) -> Any:
            return h.get(name.encode(), h.get(name))

        return AccessTokenView(
            id=token_id,
            user_id=int(_s(field("user_id"), "0")),
            scope=_s(field("scope")),
            expires_at=_dt(field("expires_at")) or datetime.fromtimestamp(0, tz=UTC),
            revoked_at=_dt(field("revoked_at")),
            user_ip=_s(field("user_ip")) or None,
            created_at=_dt(field("created_at")),
        )

    @staticmethod
    def _is_revoked(h: dict[Any, Any]) -> bool:
        return bool(h.get(b"revoked_at") or h.get("revoked_at"))

    # -------------------- API ------------------------

    def create(self, record: NewAccessToken) -> AccessTokenView:
        """Insert the record; it must exist before the token is handed out."""
        now = datetime.now(UTC)
        key = self._k(record.id)
        try:
            with self.r.pipeline() as p:
                p.watch(key)
                if p.exists(key):
                    p.unwatch()
                    raise StorePersistenceFailure(f"Duplicate access token id: {record.id}")
                p.multi()
                self._stage_create(p, record, now)
                p.execute()
        except redis.RedisError as exc:
            log.error("token_store.create.failed", exc_info=True)
            raise StorePersistenceFailure() from exc
        return AccessTokenView(
            id=record.id,
            user_id=record.user_id,
            scope=record.scope,
            expires_at=record.expires_at,
            user_ip=record.user_ip,
            created_at=now,
        )

    def get(self, token_id: str) -> AccessTokenView | None:
        try:
            h = self.r.hgetall(self._k(token_id))
        except redis.RedisError as exc:
            log.error("token_store.get.failed", exc_info=True)
            raise StorePersistenceFailure() from exc
        if not h:
            return None
        return self._to_view(token_id, h)

    def _cas_revoke(self, token_id: str, now: datetime, new: NewAccessToken | None) -> RotationResult:
        k_old = self._k(token_id)
        watched = [k_old] if new is None else [k_old, self._k(new.id)]

        while True:
            try:
                with self.r.pipeline() as p:
                    p.watch(*watched)
                    h = p.hgetall(k_old)
                    if not h:
                        p.unwatch()
                        return RotationResult.NOT_FOUND
                    if self._is_revoked(h):
                        p.unwatch()
                        return RotationResult.REVOKED

                    p.multi()
                    p.hset(k_old, "revoked_at", now.astimezone(UTC).isoformat())
                    if new is not None:
                        self._stage_create(p, new, now)
                    p.execute()
                return RotationResult.OK
            except redis.WatchError:
                # Record changed under us; re-check its state
                continue

    def revoke(self, token_id: str, *, now: datetime) -> bool:
        try:
            return self._cas_revoke(token_id, now, None) is RotationResult.OK
        except redis.RedisError as exc:
            log.error("token_store.revoke.failed", exc_info=True)
            raise StorePersistenceFailure() from exc

    def rotate(self, *, old_id: str, new: NewAccessToken, now: datetime) -> RotationResult:
        try:
            return self._cas_revoke(old_id, now, new)
        except redis.RedisError as exc:
            log.error("token_store.rotate.failed", exc_info=True)
            raise StorePersistenceFailure() from exc

    def delete(self, token_id: str) -> bool:
        try:
            with self.r.pipeline(transaction=True) as p:
                p.delete(self._k(token_id))
                p.zrem(self.EXPIRY_INDEX, token_id)
                deleted, _ = p.execute()
        except redis.RedisError as exc:
            log.error("token_store.delete.failed", exc_info=True)
            raise StorePersistenceFailure() from exc
        return bool(deleted)

    def purge_expired(self, *, before: datetime) -> int:
        try:
            stale = [
                _s(member)
                for member in self.r.zrangebyscore(
                    self.EXPIRY_INDEX, "-inf", f"({before.timestamp()}"
                )
            ]
            if not stale:
                return 0
            with self.r.pipeline(transaction=True) as p:
                p.delete(*[self._k(j) for j in stale])
                p.zrem(self.EXPIRY_INDEX, *stale)
                p.execute()
        except redis.RedisError as exc:
            log.error("token_store.purge_expired.failed", exc_info=True)
            raise StorePersistenceFailure() from exc
        return len(stale)
