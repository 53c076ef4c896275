"""
Unit tests for TokenService with in-memory ports and a frozen clock.

No Flask request or database is needed: the store, user lookup and token
provider are the in-memory implementations shipped with the ports.
"""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from blogapi.core.config import DEFAULT_OAUTH_SCOPES, DEFAULT_RESTRICTED_SCOPES
from blogapi.infra.crypto.fernet_token_cipher import FernetTokenCipher
from blogapi.services._shared.errors import (
    InvalidRefreshToken,
    NotFoundError,
    StorePersistenceFailure,
)
from blogapi.services._shared.ports import (
    InMemoryAccessTokenStore,
    InMemoryUserLookup,
    StubTokenProvider,
    UserSnapshot,
)
from blogapi.services.tokens.dto import TokenConfig
from blogapi.services.tokens.scope_policy import ScopePolicy
from blogapi.services.tokens.service import TokenService

ORIGIN = "https://blog.example.com"
ALL_SCOPES = " ".join(DEFAULT_OAUTH_SCOPES)

ALICE = UserSnapshot(id=1, username="alice", email="alice@example.com", email_verified=True)
BOB = UserSnapshot(id=2, username="bob", email="bob@example.com", email_verified=False)


@pytest.fixture
def users():
    return InMemoryUserLookup(ALICE, BOB)


@pytest.fixture
def store(clock):
    return InMemoryAccessTokenStore(clock=clock)


@pytest.fixture
def provider():
    return StubTokenProvider()


@pytest.fixture
def cipher():
    return FernetTokenCipher.from_secret("unit-test-refresh-key")


@pytest.fixture
def service(provider, cipher, store, users, clock):
    return TokenService(
        token_provider=provider,
        cipher=cipher,
        store=store,
        users=users,
        scope_policy=ScopePolicy(DEFAULT_OAUTH_SCOPES, DEFAULT_RESTRICTED_SCOPES),
        token_cfg=TokenConfig(access_ttl=timedelta(seconds=600)),
        clock=clock,
    )


def _claims(provider, envelope):
    return provider.decode(envelope.access_token)


# --------------------------------------------------------------------------- #
# Issuance
# --------------------------------------------------------------------------- #


class TestIssueToken:
    def test_envelope_claims_and_record_agree(self, service, provider, store, clock):
        envelope = service.issue_token(ALICE, "*", client_ip="10.0.0.1", origin=ORIGIN)

        assert envelope.token_type == "Bearer"
        assert envelope.expires_in == 600
        assert envelope.scope == ALL_SCOPES
        assert set(envelope.as_dict()) == {
            "token_type",
            "access_token",
            "refresh_token",
            "expires_in",
            "scope",
        }

        claims = _claims(provider, envelope)
        assert claims["sub"] == "1"
        assert claims["username"] == "alice"
        assert claims["iss"] == claims["aud"] == ORIGIN
        assert claims["exp"] - claims["iat"] == 600
        assert claims["iat"] == int(clock.now.timestamp())
        assert claims["scope"] == ALL_SCOPES

        record = store.get(claims["jti"])
        assert record is not None
        assert record.user_id == 1
        assert record.scope == ALL_SCOPES
        assert record.user_ip == "10.0.0.1"
        assert record.revoked_at is None
        assert int(record.expires_at.timestamp()) == claims["exp"]

    def test_refresh_token_is_opaque(self, service, provider):
        envelope = service.issue_token(ALICE, "write:profile", client_ip=None, origin=ORIGIN)
        jti = _claims(provider, envelope)["jti"]

        assert jti not in envelope.refresh_token
        assert "write:profile" not in envelope.refresh_token
        assert envelope.refresh_token != envelope.access_token

    def test_accepts_user_id(self, service):
        envelope = service.issue_token(1, "write:profile", client_ip=None, origin=ORIGIN)
        assert envelope.scope == "write:profile"

    def test_unverified_user_loses_restricted_scopes(self, service):
        envelope = service.issue_token(BOB, "*", client_ip=None, origin=ORIGIN)
        assert envelope.scope == "write:profile"

    def test_rereads_user_verification_state(self, service, users):
        stale = BOB
        users.put(UserSnapshot(id=2, username="bob", email="bob@example.com", email_verified=True))

        envelope = service.issue_token(stale, "*", client_ip=None, origin=ORIGIN)

        assert envelope.scope == ALL_SCOPES

    def test_unknown_scopes_are_dropped(self, service):
        envelope = service.issue_token(ALICE, "admin write:posts", client_ip=None, origin=ORIGIN)
        assert envelope.scope == "write:posts"

    def test_empty_scope_still_issues(self, service, store):
        envelope = service.issue_token(ALICE, "", client_ip=None, origin=ORIGIN)
        assert envelope.scope == ""
        assert len(store) == 1

    def test_missing_user_issues_nothing(self, service, store):
        with pytest.raises(NotFoundError):
            service.issue_token(99, "*", client_ip=None, origin=ORIGIN)
        assert len(store) == 0

    def test_store_failure_returns_no_envelope(self, provider, cipher, users, clock):
        class FailingStore(InMemoryAccessTokenStore):
            def create(self, record):
                raise StorePersistenceFailure()

        svc = TokenService(
            token_provider=provider,
            cipher=cipher,
            store=FailingStore(),
            users=users,
            scope_policy=ScopePolicy(DEFAULT_OAUTH_SCOPES),
            clock=clock,
        )
        with pytest.raises(StorePersistenceFailure):
            svc.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)


# --------------------------------------------------------------------------- #
# Validation
# --------------------------------------------------------------------------- #


class TestIsAccessTokenValid:
    def test_fresh_token_is_valid(self, service, provider):
        envelope = service.issue_token(ALICE, "*", client_ip="10.0.0.1", origin=ORIGIN)
        assert service.is_access_token_valid(_claims(provider, envelope), "10.0.0.1") is True

    @pytest.mark.parametrize(
        ("recorded_ip", "current_ip", "expected"),
        [
            ("10.0.0.1", "10.0.0.1", True),
            ("10.0.0.1", "10.0.0.2", False),
            ("10.0.0.1", None, True),
            (None, "10.0.0.2", True),
            (None, None, True),
        ],
    )
    def test_client_ip_binding(self, service, provider, recorded_ip, current_ip, expected):
        envelope = service.issue_token(ALICE, "*", client_ip=recorded_ip, origin=ORIGIN)
        assert service.is_access_token_valid(_claims(provider, envelope), current_ip) is expected

    @pytest.mark.parametrize("payload", [None, {}, {"jti": ""}, {"jti": 42}, {"jti": "nope"}])
    def test_missing_or_unknown_jti(self, service, payload):
        assert service.is_access_token_valid(payload, None) is False

    def test_expiry_boundary(self, service, provider, clock):
        envelope = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        claims = _claims(provider, envelope)

        clock.advance(timedelta(seconds=599))
        assert service.is_access_token_valid(claims, None) is True

        clock.advance(timedelta(seconds=1))
        assert service.is_access_token_valid(claims, None) is False

    def test_revoked_token_is_invalid(self, service, provider):
        envelope = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        claims = _claims(provider, envelope)

        service.revoke(claims["jti"])

        assert service.is_access_token_valid(claims, None) is False

    def test_store_error_reads_as_invalid(self, provider, cipher, users, clock):
        class BrokenStore(InMemoryAccessTokenStore):
            def get(self, token_id):
                raise StorePersistenceFailure()

        svc = TokenService(
            token_provider=provider,
            cipher=cipher,
            store=BrokenStore(),
            users=users,
            scope_policy=ScopePolicy(DEFAULT_OAUTH_SCOPES),
            clock=clock,
        )
        assert svc.is_access_token_valid({"jti": "abc"}, None) is False


# --------------------------------------------------------------------------- #
# Refresh
# --------------------------------------------------------------------------- #


class TestRefresh:
    def test_rotates_pair(self, service, provider, store, clock):
        first = service.issue_token(ALICE, "write:profile write:posts", client_ip=None, origin=ORIGIN)
        old_jti = _claims(provider, first)["jti"]

        clock.advance(timedelta(seconds=30))
        second = service.refresh(first.refresh_token, client_ip="10.0.0.9", origin=ORIGIN)
        new_claims = _claims(provider, second)

        assert new_claims["jti"] != old_jti
        assert second.scope == "write:profile write:posts"
        assert second.refresh_token != first.refresh_token
        assert store.get(old_jti).revoked_at == clock.now
        new_record = store.get(new_claims["jti"])
        assert new_record.revoked_at is None
        assert new_record.user_ip == "10.0.0.9"
        assert new_record.expires_at == clock.now + timedelta(seconds=600)
        assert service.is_access_token_valid(_claims(provider, first), None) is False
        assert service.is_access_token_valid(new_claims, "10.0.0.9") is True

    def test_second_redemption_is_rejected_and_creates_nothing(self, service, store):
        first = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)
        count = len(store)

        with pytest.raises(InvalidRefreshToken) as exc_info:
            service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)

        assert exc_info.value.reason == "revoked"
        assert str(exc_info.value) == "Invalid refresh token"
        assert len(store) == count

    def test_revoked_access_token_blocks_refresh(self, service, provider, store):
        first = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        service.revoke(_claims(provider, first)["jti"])

        with pytest.raises(InvalidRefreshToken):
            service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)
        assert len(store) == 1

    def test_expired_record_blocks_refresh(self, service, clock, store):
        first = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        clock.advance(timedelta(seconds=600))

        with pytest.raises(InvalidRefreshToken) as exc_info:
            service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)

        assert exc_info.value.reason == "expired"
        assert len(store) == 1

    def test_deleted_record_blocks_refresh(self, service, provider, store):
        first = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        store.delete(_claims(provider, first)["jti"])

        with pytest.raises(InvalidRefreshToken) as exc_info:
            service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)
        assert exc_info.value.reason == "unknown"

    def test_missing_user_blocks_refresh(self, service, users):
        first = service.issue_token(BOB, "*", client_ip=None, origin=ORIGIN)
        users.remove(BOB.id)

        with pytest.raises(InvalidRefreshToken) as exc_info:
            service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)
        assert exc_info.value.reason == "user_missing"

    def test_scope_is_refiltered_but_never_widened(self, service, users):
        first = service.issue_token(ALICE, "write:profile write:posts", client_ip=None, origin=ORIGIN)

        users.put(UserSnapshot(id=1, username="alice", email="alice@example.com", email_verified=False))
        second = service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)
        assert second.scope == "write:profile"

        users.put(ALICE)
        third = service.refresh(second.refresh_token, client_ip=None, origin=ORIGIN)
        assert third.scope == "write:profile"

    @pytest.mark.parametrize("garbage", ["", "not-a-token", "gAAAAABbogus"])
    def test_garbage_is_rejected(self, service, garbage):
        with pytest.raises(InvalidRefreshToken) as exc_info:
            service.refresh(garbage, client_ip=None, origin=ORIGIN)
        assert exc_info.value.reason == "undecryptable"

    def test_foreign_key_is_rejected(self, service):
        foreign = FernetTokenCipher.from_secret("another-key").encrypt(b'{"jti":"x","sub":"y"}')
        with pytest.raises(InvalidRefreshToken):
            service.refresh(foreign, client_ip=None, origin=ORIGIN)

    @pytest.mark.parametrize("plaintext", [b"[1, 2]", b"not json", b'{"jti": "x"}', b'{"sub": 7}'])
    def test_malformed_payload_is_rejected(self, service, cipher, plaintext):
        with pytest.raises(InvalidRefreshToken) as exc_info:
            service.refresh(cipher.encrypt(plaintext), client_ip=None, origin=ORIGIN)
        assert exc_info.value.reason == "malformed"

    def test_access_token_is_not_a_refresh_token(self, service):
        first = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        with pytest.raises(InvalidRefreshToken):
            service.refresh(first.access_token, client_ip=None, origin=ORIGIN)

    def test_concurrent_redemption_has_one_winner(self, service, store):
        first = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        workers = 8
        barrier = threading.Barrier(workers)
        outcomes: list[str] = []
        lock = threading.Lock()

        def redeem():
            barrier.wait()
            try:
                service.refresh(first.refresh_token, client_ip=None, origin=ORIGIN)
                result = "ok"
            except InvalidRefreshToken:
                result = "rejected"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=redeem) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("rejected") == workers - 1
        assert len(store) == 2


# --------------------------------------------------------------------------- #
# Revocation & purge
# --------------------------------------------------------------------------- #


class TestRevokeAndPurge:
    def test_revoke_is_idempotent(self, service, provider, store, clock):
        envelope = service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        jti = _claims(provider, envelope)["jti"]

        service.revoke(jti)
        first_revoked_at = store.get(jti).revoked_at
        clock.advance(timedelta(seconds=5))
        service.revoke(jti)

        assert store.get(jti).revoked_at == first_revoked_at

    def test_revoke_unknown_is_noop(self, service, store):
        service.revoke("does-not-exist")
        assert len(store) == 0

    def test_purge_keeps_records_within_grace(self, service, store, clock):
        service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        clock.advance(timedelta(hours=1))
        service.issue_token(BOB, "*", client_ip=None, origin=ORIGIN)

        clock.advance(timedelta(days=1))
        removed = service.purge_expired()

        assert removed == 1
        assert len(store) == 1

    def test_purge_with_zero_grace(self, service, store, clock):
        service.issue_token(ALICE, "*", client_ip=None, origin=ORIGIN)
        clock.advance(timedelta(seconds=601))

        assert service.purge_expired(timedelta(0)) == 1
        assert len(store) == 0
