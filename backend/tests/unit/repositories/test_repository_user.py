"""Unit tests for UserRepository."""

import pytest
from blogapi.repositories.user import UserRepository
from tests.factories.user import UserFactory


class TestUserRepository:
    """Ensure ``UserRepository`` performs core persistence operations."""

    @pytest.fixture()
    def repo(self):
        return UserRepository()

    def test_create_and_get_user(self, repo, session):
        """Create a user and fetch it by email to verify retrieval."""
        u = UserFactory(email="alice@example.com", username="alice")
        session.commit()

        fetched = repo.get_by_email("ALICE@example.com ")
        assert fetched is not None
        assert fetched.id == u.id
        assert fetched.username == "alice"

    def test_get_by_login_accepts_username_or_email(self, repo):
        u = UserFactory(email="writer@example.com", username="writer")

        assert repo.get_by_login("writer").id == u.id
        assert repo.get_by_login("Writer@Example.com").id == u.id
        assert repo.get_by_login("nobody") is None

    def test_exists_by_email(self, repo):
        """Return existence flags for known and unknown email addresses."""
        UserFactory(email="bob@example.com")

        assert repo.exists_by_email("bob@example.com")
        assert not repo.exists_by_email("nonexistent@example.com")

    def test_exists_by_username_can_exclude_self(self, repo):
        u = UserFactory(username="carol")

        assert repo.exists_by_username("carol")
        assert not repo.exists_by_username("carol", exclude_id=u.id)

    def test_authenticate_valid_and_invalid(self, repo):
        """Authenticate with correct credentials and reject invalid attempts."""
        u = UserFactory(email="auth@example.com", username="authuser", password="strongpass")

        assert repo.authenticate("auth@example.com", "strongpass").id == u.id
        assert repo.authenticate("authuser", "strongpass").id == u.id
        assert repo.authenticate("auth@example.com", "wrongpass") is None
        assert repo.authenticate("nope@example.com", "strongpass") is None

    def test_assign_updates_whitelist(self, repo):
        u = UserFactory()

        repo.assign_updates(u, {"full_name": "Grace Hopper"})
        assert u.full_name == "Grace Hopper"

        with pytest.raises(ValueError, match="non-updatable"):
            repo.assign_updates(u, {"email": "hijack@example.com"})

    def test_find_one_rejects_unknown_filters(self, repo):
        UserFactory(username="dave")

        assert repo.find_one(username="dave") is not None
        with pytest.raises(ValueError, match="non-filterable"):
            repo.find_one(password_hash="x")
