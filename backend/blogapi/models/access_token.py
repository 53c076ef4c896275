"""Server-side record backing every issued access token."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blogapi.core.extensions import db

from .base import ReprMixin, UTCDateTime

if TYPE_CHECKING:
    from .user import User


class AccessToken(ReprMixin, db.Model):
    """
    One row per access token handed to a client.

    Fields
    ------
    id : str
        The token's ``jti`` claim. Primary key, never reassigned.
    user_id : int
        Owner of the token.
    scope : str
        Space-delimited scopes granted at issuance.
    expires_at : datetime
        Absolute UTC expiry, fixed at creation and never extended.
    revoked_at : datetime | None
        Set exactly once when the token is revoked or rotated; never cleared.
    user_ip : str | None
        Client address seen at issuance. Validation rejects other addresses.
    created_at : datetime
        Insert timestamp.

    Notes
    -----
    Revocation goes through
    :meth:`blogapi.repositories.access_token.AccessTokenRepository.revoke_if_active`,
    a conditional ``UPDATE`` that keeps the first ``revoked_at``.
    """

    __tablename__ = "access_tokens"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    scope: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    user_ip: Mapped[str | None] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        server_default=func.now(),
    )

    user: Mapped[User] = relationship(back_populates="access_tokens")

    __table_args__ = (
        Index("ix_access_tokens_user_id", "user_id"),
        Index("ix_access_tokens_expires_at", "expires_at"),
    )

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at is not None
