"""User repository: lookups used by registration, login and token issuance."""

from __future__ import annotations

from typing import cast

from sqlalchemy import func, or_, select

from blogapi.models.user import User
from blogapi.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It never issues tokens; it only finds and mutates user rows.
    """

    model = User

    def _filterable_fields(self):
        return {
            "id": User.id,
            "email": User.email,
            "username": User.username,
        }

    def _updatable_fields(self):
        """Profile fields a user may change themselves (not email or password)."""
        return {"username", "full_name"}

    # ---------------------------- Lookup helpers ----------------------------

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive)."""
        stmt = select(User).where(User.email == email.lower().strip())
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def get_by_login(self, login: str) -> User | None:
        """Fetch a user whose username or email matches ``login``.

        :param login: Username (exact, trimmed) or email (case-insensitive).
        :returns: Matching user or ``None``.
        """
        value = login.strip()
        stmt = select(User).where(
            or_(User.username == value, User.email == value.lower())
        )
        return cast(User | None, self.session.execute(stmt).scalars().first())

    def exists_by_email(self, email: str) -> bool:
        stmt = select(User.id).where(User.email == email.lower().strip())
        return bool(self.session.execute(stmt).first())

    def exists_by_username(self, username: str, *, exclude_id: int | None = None) -> bool:
        stmt = select(func.count()).select_from(User).where(User.username == username.strip())
        if exclude_id is not None:
            stmt = stmt.where(User.id != exclude_id)
        return bool(self.session.execute(stmt).scalar())

    # ---------------------------- Password ops ----------------------------

    def authenticate(self, login: str, password: str) -> User | None:
        """Authenticate by username or email plus password.

        :returns: Authenticated user or ``None`` when credentials fail.
        """
        user = self.get_by_login(login)
        if not user or not user.verify_password(password):
            return None
        return user
