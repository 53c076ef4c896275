from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from blogapi.services._shared.errors import NotFoundError


@dataclass(frozen=True, slots=True)
class UserSnapshot:
    """
    Fresh, detached view of a user as needed for token issuance.

    :ivar id: User id (``sub`` claim is ``str(id)``).
    :ivar username: Public handle, copied into the ``username`` claim.
    :ivar email: Normalized email.
    :ivar email_verified: Whether the email address has been confirmed.
    """

    id: int
    username: str
    email: str
    email_verified: bool


class UserLookup(Protocol):
    """Port for reading users by id at token issuance/refresh time."""

    def find_user_by_id(self, user_id: int) -> UserSnapshot | None: ...

    def find_user_by_id_or_throw(self, user_id: int) -> UserSnapshot:
        """:raises NotFoundError: When the user does not exist."""


class InMemoryUserLookup(UserLookup):
    """Dict-backed lookup for unit tests."""

    def __init__(self, *users: UserSnapshot) -> None:
        self._users = {u.id: u for u in users}

    def put(self, user: UserSnapshot) -> None:
        self._users[user.id] = user

    def remove(self, user_id: int) -> None:
        self._users.pop(user_id, None)

    def find_user_by_id(self, user_id: int) -> UserSnapshot | None:
        return self._users.get(user_id)

    def find_user_by_id_or_throw(self, user_id: int) -> UserSnapshot:
        user = self.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user
