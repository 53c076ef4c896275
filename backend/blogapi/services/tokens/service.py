"""
TokenService
============

Bearer-token lifecycle: issue, validate, refresh (rotate) and revoke access
tokens. Every access token has exactly one record in the
:class:`~blogapi.services._shared.ports.AccessTokenStore`; the refresh token
is an encrypted pointer to that record and carries no scope or user data.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, NoReturn
from uuid import uuid4

from blogapi.services._shared.base import BaseService, ServiceContext
from blogapi.services._shared.errors import (
    InvalidRefreshToken,
    StorePersistenceFailure,
)
from blogapi.services._shared.ports import (
    AccessTokenStore,
    NewAccessToken,
    RotationResult,
    TokenCipher,
    TokenProvider,
    UserLookup,
    UserSnapshot,
)
from blogapi.services.tokens.dto import TokenConfig, TokenEnvelope
from blogapi.services.tokens.scope_policy import ScopePolicy

log = logging.getLogger(__name__)


class TokenService(BaseService):
    """
    Stateless token lifecycle service; all shared state lives in the store.

    Parameters
    ----------
    token_provider:
        Signs access-token claims.
    cipher:
        Encrypts and decrypts refresh tokens.
    store:
        Access-token records with atomic revoke/rotate.
    users:
        Fresh user reads at issuance and refresh time.
    scope_policy:
        Scope catalog and verification-gated restrictions.
    token_cfg:
        Lifetimes; defaults to a 600 s access TTL.
    clock:
        Returns the current aware UTC instant. Injected by tests.
    """

    def __init__(
        self,
        *,
        token_provider: TokenProvider,
        cipher: TokenCipher,
        store: AccessTokenStore,
        users: UserLookup,
        scope_policy: ScopePolicy,
        token_cfg: TokenConfig | None = None,
        clock: Callable[[], datetime] | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        super().__init__(ctx=ctx)
        self.tokens = token_provider
        self.cipher = cipher
        self.store = store
        self.users = users
        self.scope_policy = scope_policy
        self.cfg = token_cfg or TokenConfig()
        self._clock = clock

    def now_utc(self) -> datetime:
        return self._clock() if self._clock is not None else datetime.now(UTC)

    # ------------------------------------------------------------------ #
    # Issuance
    # ------------------------------------------------------------------ #

    def issue_token(
        self,
        user: UserSnapshot | int,
        requested_scope: str | None,
        *,
        client_ip: str | None,
        origin: str,
    ) -> TokenEnvelope:
        """
        Issue a new access/refresh pair for ``user``.

        The user is re-read so the scope policy sees the current email
        verification state.

        :param user: Snapshot or id of the user the token is for.
        :param requested_scope: Raw requested scope (``"*"`` for everything).
        :param client_ip: Address the access token is bound to.
        :param origin: ``scheme://host`` used as issuer and audience.
        :raises NotFoundError: If the user no longer exists.
        :raises StorePersistenceFailure: If the record cannot be written; no
            envelope is returned in that case.
        """
        user_id = user.id if isinstance(user, UserSnapshot) else int(user)
        current = self.users.find_user_by_id_or_throw(user_id)
        scope = self.scope_policy.effective_scope(
            requested_scope, email_verified=current.email_verified
        )

        envelope, record = self._mint(current, scope, client_ip=client_ip, origin=origin)
        self.store.create(record)

        log.info(
            "token.issued",
            extra={"user_id": current.id, "jti": record.id, "scope": scope},
        )
        return envelope

    def _mint(
        self,
        user: UserSnapshot,
        scope: str,
        *,
        client_ip: str | None,
        origin: str,
    ) -> tuple[TokenEnvelope, NewAccessToken]:
        """Sign a new access token and build its refresh token and record."""
        ttl = int(self.cfg.access_ttl.total_seconds())
        issued_at = int(self.now_utc().timestamp())
        expires = issued_at + ttl
        jti = uuid4().hex

        claims: dict[str, Any] = {
            "iss": origin,
            "aud": origin,
            "sub": str(user.id),
            "iat": issued_at,
            "exp": expires,
            "jti": jti,
            "username": user.username,
            "scope": scope,
        }
        access_token = self.tokens.sign(claims)
        refresh_token = self._seal_refresh_token(jti)

        record = NewAccessToken(
            id=jti,
            user_id=user.id,
            scope=scope,
            expires_at=datetime.fromtimestamp(expires, tz=UTC),
            user_ip=client_ip,
        )
        envelope = TokenEnvelope(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=ttl,
            scope=scope,
        )
        return envelope, record

    def _seal_refresh_token(self, access_token_id: str) -> str:
        payload = {"jti": uuid4().hex, "sub": access_token_id}
        return self.cipher.encrypt(json.dumps(payload, separators=(",", ":")).encode("utf-8"))

    def _open_refresh_token(self, refresh_token: str) -> str:
        """Return the access-token id a refresh token points at."""
        raw = self.cipher.decrypt(refresh_token) if refresh_token else None
        if raw is None:
            raise InvalidRefreshToken("undecryptable")
        try:
            payload = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            raise InvalidRefreshToken("malformed") from exc
        if not isinstance(payload, dict):
            raise InvalidRefreshToken("malformed")
        access_token_id = payload.get("sub")
        if not isinstance(access_token_id, str) or not access_token_id:
            raise InvalidRefreshToken("malformed")
        return access_token_id

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def is_access_token_valid(
        self, decoded_payload: Mapping[str, Any] | None, client_ip: str | None
    ) -> bool:
        """
        Check a structurally verified token against its stored record.

        Returns ``False`` (never raises) when the ``jti`` is missing, the
        record is unknown, revoked or expired (``expires_at <= now``), or when
        both the recorded and the current client address are known and differ.
        """
        jti = decoded_payload.get("jti") if decoded_payload else None
        if not isinstance(jti, str) or not jti:
            return False

        try:
            record = self.store.get(jti)
        except StorePersistenceFailure:
            log.error("token.validate.store_error", extra={"jti": jti}, exc_info=True)
            return False

        if record is None or record.is_revoked:
            return False
        if record.is_expired(self.now_utc()):
            return False
        if record.user_ip is not None and client_ip is not None and record.user_ip != client_ip:
            log.warning("token.validate.ip_mismatch", extra={"jti": jti})
            return False
        return True

    # ------------------------------------------------------------------ #
    # Refresh with rotation
    # ------------------------------------------------------------------ #

    def refresh(
        self,
        refresh_token: str,
        *,
        client_ip: str | None,
        origin: str,
    ) -> TokenEnvelope:
        """
        Redeem a refresh token for a new pair and revoke the old access token.

        The new pair reuses the original record's scope, filtered again by
        the scope policy, so a refresh can narrow scope but never widen it.
        Revoking the old record and creating the new one happen atomically
        in the store; when two requests redeem the same refresh token only
        one succeeds.

        :raises InvalidRefreshToken: For every rejection cause.
        :raises StorePersistenceFailure: If the store cannot be written.
        """
        try:
            access_token_id = self._open_refresh_token(refresh_token)
        except InvalidRefreshToken as exc:
            log.warning("token.refresh.rejected", extra={"reason": exc.reason})
            raise

        record = self.store.get(access_token_id)
        if record is None:
            self._reject("unknown", access_token_id)
        if record.is_revoked:
            log.warning(
                "token.refresh.reuse",
                extra={"jti": record.id, "user_id": record.user_id},
            )
            self._reject("revoked", record.id)

        now = self.now_utc()
        if record.is_expired(now):
            self._reject("expired", record.id)

        user = self.users.find_user_by_id(record.user_id)
        if user is None:
            self._reject("user_missing", record.id)

        scope = self.scope_policy.effective_scope(record.scope, email_verified=user.email_verified)
        envelope, new_record = self._mint(user, scope, client_ip=client_ip, origin=origin)

        result = self.store.rotate(old_id=record.id, new=new_record, now=now)
        if result is not RotationResult.OK:
            # Lost the race against a concurrent redemption of the same token
            log.warning(
                "token.refresh.reuse",
                extra={"jti": record.id, "user_id": record.user_id, "reason": result.name},
            )
            self._reject("rotation_lost", record.id)

        log.info(
            "token.refreshed",
            extra={"user_id": user.id, "jti": new_record.id, "scope": scope},
        )
        return envelope

    @staticmethod
    def _reject(reason: str, jti: str | None = None) -> NoReturn:
        log.warning("token.refresh.rejected", extra={"reason": reason, "jti": jti})
        raise InvalidRefreshToken(reason)

    # ------------------------------------------------------------------ #
    # Revocation & housekeeping
    # ------------------------------------------------------------------ #

    def revoke(self, access_token_id: str) -> None:
        """
        Revoke an access token (and with it its refresh token).

        Idempotent: an already revoked record keeps its first ``revoked_at``
        and an unknown id is ignored.
        """
        if self.store.revoke(access_token_id, now=self.now_utc()):
            log.info("token.revoked", extra={"jti": access_token_id})

    def purge_expired(self, grace: timedelta | None = None) -> int:
        """
        Delete records that expired more than ``grace`` ago.

        :param grace: Defaults to ``TokenConfig.purge_grace``.
        :returns: Number of records removed.
        """
        before = self.now_utc() - (self.cfg.purge_grace if grace is None else grace)
        count = self.store.purge_expired(before=before)
        log.info("token.purged", extra={"count": count})
        return count
