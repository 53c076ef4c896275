"""
API tests for the OAuth2 token and revocation endpoints.

Factories are committed before each request because the request teardown
removes the scoped session.
"""

from __future__ import annotations

import pytest
from blogapi.core.config import DEFAULT_OAUTH_SCOPES
from tests.factories.user import DEFAULT_PASSWORD, UserFactory

TOKEN_URL = "/api/v1/oauth/token"
REVOKE_URL = "/api/v1/oauth/revoke"
ME_URL = "/api/v1/auth/user"
ALL_SCOPES = " ".join(DEFAULT_OAUTH_SCOPES)


def _make_user(session, **kwargs) -> dict:
    user = UserFactory(**kwargs)
    session.commit()
    return {"id": user.id, "username": user.username, "email": user.email}


def _password_grant(client, login, password=DEFAULT_PASSWORD, *, scope=None, ip=None):
    body = {"grant_type": "password", "username": login, "password": password}
    if scope is not None:
        body["scope"] = scope
    headers = {"X-Forwarded-For": ip} if ip else {}
    return client.post(TOKEN_URL, json=body, headers=headers)


def _refresh_grant(client, refresh_token, *, ip=None):
    headers = {"X-Forwarded-For": ip} if ip else {}
    return client.post(
        TOKEN_URL,
        json={"grant_type": "refresh_token", "refresh_token": refresh_token},
        headers=headers,
    )


def _bearer(token: str, ip: str | None = None) -> dict:
    headers = {"Authorization": f"Bearer {token}"}
    if ip:
        headers["X-Forwarded-For"] = ip
    return headers


class TestPasswordGrant:
    def test_issues_token_pair(self, client, session):
        user = _make_user(session, verified=True)

        resp = _password_grant(client, user["username"])

        assert resp.status_code == 201
        body = resp.get_json()
        assert set(body) == {"token_type", "access_token", "refresh_token", "expires_in", "scope"}
        assert body["token_type"] == "Bearer"
        assert body["expires_in"] == 600
        assert body["scope"] == ALL_SCOPES
        assert resp.headers["Cache-Control"] == "no-store"

    @pytest.mark.parametrize("scope", ["", "   "])
    def test_blank_scope_falls_back_to_default(self, client, session, scope):
        user = _make_user(session, verified=True)

        resp = _password_grant(client, user["username"], scope=scope)

        assert resp.status_code == 201
        assert resp.get_json()["scope"] == ALL_SCOPES

    def test_login_with_email_and_form_body(self, client, session):
        user = _make_user(session)

        resp = client.post(
            TOKEN_URL,
            data={
                "grant_type": "password",
                "username": user["email"],
                "password": DEFAULT_PASSWORD,
                "scope": "write:profile write:posts",
            },
        )

        assert resp.status_code == 201
        # unverified: restricted scopes are withheld
        assert resp.get_json()["scope"] == "write:profile"

    def test_token_is_usable(self, client, session):
        user = _make_user(session)
        token = _password_grant(client, user["username"]).get_json()["access_token"]

        resp = client.get(ME_URL, headers=_bearer(token))

        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == user["id"]

    @pytest.mark.parametrize("login_kind", ["wrong_password", "unknown_user"])
    def test_bad_credentials(self, client, session, login_kind):
        user = _make_user(session)
        login = user["username"] if login_kind == "wrong_password" else "ghost"
        password = "nope-nope" if login_kind == "wrong_password" else DEFAULT_PASSWORD

        resp = _password_grant(client, login, password)

        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_grant"
        assert resp.get_json()["detail"] == "Invalid username or password"
        assert resp.headers["WWW-Authenticate"].startswith("Bearer")

    def test_missing_fields(self, client):
        resp = client.post(TOKEN_URL, json={"grant_type": "password", "username": "x"})

        assert resp.status_code == 422
        assert "password" in resp.get_json()["details"]["errors"]

    def test_unsupported_grant_type(self, client):
        resp = client.post(TOKEN_URL, json={"grant_type": "client_credentials"})

        assert resp.status_code == 422
        assert "grant_type" in resp.get_json()["details"]["errors"]


class TestBearerValidation:
    def test_missing_header(self, client):
        resp = client.get(ME_URL)
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"].startswith("Bearer")

    def test_garbage_token(self, client):
        resp = client.get(ME_URL, headers=_bearer("not-a-jwt"))
        assert resp.status_code == 401
        assert resp.get_json()["code"] == "unauthorized"

    def test_token_bound_to_client_ip(self, client, session):
        user = _make_user(session)
        token = _password_grant(client, user["username"], ip="203.0.113.5").get_json()[
            "access_token"
        ]

        assert client.get(ME_URL, headers=_bearer(token, "203.0.113.5")).status_code == 200
        assert client.get(ME_URL, headers=_bearer(token, "198.51.100.1")).status_code == 401


class TestRefreshGrant:
    def test_rotates_pair(self, client, session):
        user = _make_user(session, verified=True)
        first = _password_grant(client, user["username"], scope="write:profile").get_json()

        resp = _refresh_grant(client, first["refresh_token"])

        assert resp.status_code == 201
        second = resp.get_json()
        assert second["scope"] == "write:profile"
        assert second["access_token"] != first["access_token"]
        assert second["refresh_token"] != first["refresh_token"]
        assert client.get(ME_URL, headers=_bearer(first["access_token"])).status_code == 401
        assert client.get(ME_URL, headers=_bearer(second["access_token"])).status_code == 200

    def test_reuse_is_rejected(self, client, session):
        user = _make_user(session)
        first = _password_grant(client, user["username"]).get_json()
        assert _refresh_grant(client, first["refresh_token"]).status_code == 201

        resp = _refresh_grant(client, first["refresh_token"])

        assert resp.status_code == 401
        assert resp.get_json()["code"] == "invalid_grant"
        assert resp.get_json()["detail"] == "Invalid refresh token"

    def test_garbage_refresh_token(self, client):
        resp = _refresh_grant(client, "definitely-not-a-token")
        assert resp.status_code == 401
        assert resp.get_json()["detail"] == "Invalid refresh token"

    def test_access_token_is_not_accepted_as_refresh_token(self, client, session):
        user = _make_user(session)
        first = _password_grant(client, user["username"]).get_json()

        assert _refresh_grant(client, first["access_token"]).status_code == 401

    def test_new_pair_binds_new_ip(self, client, session):
        user = _make_user(session)
        first = _password_grant(client, user["username"], ip="203.0.113.5").get_json()

        second = _refresh_grant(client, first["refresh_token"], ip="203.0.113.9").get_json()

        assert client.get(ME_URL, headers=_bearer(second["access_token"], "203.0.113.9")).status_code == 200
        assert client.get(ME_URL, headers=_bearer(second["access_token"], "203.0.113.5")).status_code == 401


class TestRevoke:
    def test_revoke_kills_access_and_refresh(self, client, session):
        user = _make_user(session)
        pair = _password_grant(client, user["username"]).get_json()

        resp = client.post(REVOKE_URL, headers=_bearer(pair["access_token"]))

        assert resp.status_code == 204
        assert client.get(ME_URL, headers=_bearer(pair["access_token"])).status_code == 401
        assert _refresh_grant(client, pair["refresh_token"]).status_code == 401

    def test_revoke_requires_valid_token(self, client):
        assert client.post(REVOKE_URL).status_code == 401
