"""
IdentityService
===============

Application service for the ``User`` aggregate:

- Registration and profile updates.
- Credential checks for the password grant (no token issuance here).
- Email verification tokens.
- Fresh user reads for the token service (``UserLookup`` port).
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError

from blogapi.models.user import User
from blogapi.repositories.user import UserRepository
from blogapi.services._shared.base import BaseService, ServiceContext
from blogapi.services._shared.errors import (
    ConflictError,
    EmailAlreadyVerified,
    InvalidCredentials,
    InvalidVerificationToken,
    NotFoundError,
    violates,
)
from blogapi.services._shared.ports import TokenCipher, UserSnapshot
from blogapi.services.identity.dto import (
    UserAuthIn,
    UserPublicOut,
    UserRegisterIn,
    UserUpdateIn,
)

log = logging.getLogger(__name__)


def _public(user: User) -> UserPublicOut:
    return UserPublicOut(
        id=user.id,
        email=user.email,
        username=user.username,
        full_name=user.full_name,
        email_verified_at=user.email_verified_at,
    )


def _snapshot(user: User) -> UserSnapshot:
    return UserSnapshot(
        id=user.id,
        username=user.username,
        email=user.email,
        email_verified=user.is_email_verified,
    )


class IdentityService(BaseService):
    """
    Application service for the ``User`` aggregate.

    :param cipher: Required only for the email-verification operations.
    :param verification_ttl: Maximum age, in seconds, of a verification token.
    """

    def __init__(
        self,
        *,
        cipher: TokenCipher | None = None,
        verification_ttl: int | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        super().__init__(ctx=ctx)
        self.cipher = cipher
        self.verification_ttl = verification_ttl

    # --------------------------------------------------------------------- #
    # Registration
    # --------------------------------------------------------------------- #

    def register_user(self, dto: UserRegisterIn) -> UserPublicOut:
        """
        Register a new, unverified user.

        :raises ConflictError: If the email or username is already taken.
        """
        with self.rw_uow() as uow:
            repo: UserRepository = uow.users

            if repo.exists_by_email(dto.email):
                raise ConflictError("User", "email already in use")
            if repo.exists_by_username(dto.username):
                raise ConflictError("User", "username already in use")

            try:
                user = repo.add(
                    repo.model(
                        email=dto.email,
                        password=dto.password,  # model hashes via setter
                        username=dto.username,
                        full_name=dto.full_name,
                    )
                )
            except IntegrityError as exc:
                if violates(exc, "uq_users_email"):
                    raise ConflictError("User", "email already in use") from exc
                if violates(exc, "uq_users_username"):
                    raise ConflictError("User", "username already in use") from exc
                raise

            out = _public(user)

        log.info("user.registered", extra={"user_id": out.id})
        return out

    # --------------------------------------------------------------------- #
    # Authentication
    # --------------------------------------------------------------------- #

    def authenticate(self, dto: UserAuthIn) -> UserSnapshot:
        """
        Check credentials for the password grant.

        :raises InvalidCredentials: For an unknown login or a wrong password.
        """
        with self.ro_uow() as uow:
            user = uow.users.authenticate(dto.login, dto.password)
            if user is None:
                log.warning("user.authenticate.failed")
                raise InvalidCredentials()
            return _snapshot(user)

    # --------------------------------------------------------------------- #
    # Retrieval (UserLookup port)
    # --------------------------------------------------------------------- #

    def find_user_by_id(self, user_id: int) -> UserSnapshot | None:
        with self.ro_uow() as uow:
            user = uow.users.get(user_id)
            return _snapshot(user) if user is not None else None

    def find_user_by_id_or_throw(self, user_id: int) -> UserSnapshot:
        snapshot = self.find_user_by_id(user_id)
        if snapshot is None:
            raise NotFoundError("User", user_id)
        return snapshot

    def get_user(self, user_id: int) -> UserPublicOut:
        """
        :raises NotFoundError: If the user does not exist.
        """
        with self.ro_uow() as uow:
            user = uow.users.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)
            return _public(user)

    # --------------------------------------------------------------------- #
    # Profile update
    # --------------------------------------------------------------------- #

    def update_user(self, user_id: int, dto: UserUpdateIn) -> UserPublicOut:
        """
        Update username and/or full name. ``None`` fields are left unchanged.

        :raises NotFoundError: When the user does not exist.
        :raises ConflictError: When the new username is taken.
        """
        updates = {
            k: v
            for k, v in {"username": dto.username, "full_name": dto.full_name}.items()
            if v is not None
        }

        with self.rw_uow() as uow:
            repo: UserRepository = uow.users
            user = repo.get(user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            if "username" in updates and repo.exists_by_username(
                updates["username"], exclude_id=user_id
            ):
                raise ConflictError("User", "username already in use")

            try:
                repo.assign_updates(user, updates)
            except IntegrityError as exc:
                if violates(exc, "uq_users_username"):
                    raise ConflictError("User", "username already in use") from exc
                raise

            return _public(user)

    # --------------------------------------------------------------------- #
    # Email verification
    # --------------------------------------------------------------------- #

    def _require_cipher(self) -> TokenCipher:
        if self.cipher is None:
            raise RuntimeError("IdentityService was built without a TokenCipher.")
        return self.cipher

    def request_email_verification(self, user_id: int) -> str:
        """
        Create an encrypted verification token for the user's current email.

        The token is returned to the caller; delivering it by mail is out of
        scope.

        :raises NotFoundError: If the user does not exist.
        :raises EmailAlreadyVerified: If there is nothing left to verify.
        """
        cipher = self._require_cipher()
        user = self.get_user(user_id)
        if user.email_verified_at is not None:
            raise EmailAlreadyVerified()

        payload = json.dumps({"email": user.email}, separators=(",", ":")).encode("utf-8")
        token = cipher.encrypt(payload)
        log.info("user.email_verification.requested", extra={"user_id": user.id})
        return token

    def verify_email(self, token: str) -> UserPublicOut:
        """
        Redeem a verification token and stamp ``email_verified_at``.

        :raises InvalidVerificationToken: If the token is invalid or too old.
        :raises NotFoundError: If no user has the encoded email any more.
        :raises EmailAlreadyVerified: If the email was verified already.
        """
        cipher = self._require_cipher()
        raw = cipher.decrypt(token, ttl=self.verification_ttl) if token else None
        if raw is None:
            raise InvalidVerificationToken()
        try:
            payload = json.loads(raw.decode("utf-8"))
            email = payload["email"]
        except (UnicodeDecodeError, ValueError, TypeError, KeyError) as exc:
            raise InvalidVerificationToken() from exc
        if not isinstance(email, str):
            raise InvalidVerificationToken()

        with self.rw_uow() as uow:
            user = uow.users.get_by_email(email)
            if user is None:
                raise NotFoundError("User", email)
            if user.is_email_verified:
                raise EmailAlreadyVerified()
            user.mark_email_verified(datetime.now(UTC))
            uow.users.flush()
            out = _public(user)

        log.info("user.email_verified", extra={"user_id": out.id})
        return out
