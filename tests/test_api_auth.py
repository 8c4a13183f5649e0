"""
tests/test_api_auth.py -- Integration tests for /api/v1/auth/* routes.

Covers:
  - register: 201 shape, 409 on duplicate, 422 validation envelope
  - login: token pair, Cache-Control no-store, identical 401 for both failure causes
  - refresh: rotation and replay rejection over HTTP
  - logout: requires an access token, idempotent
  - me / session: required vs optional authentication
  - revoke-tokens: owner or admin only
  - admin purge: admin only
  - rate limit on login returns 429 with Retry-After
  - full session lifecycle: register, login, rotate, log out the rotated token
  - request hardening: oversized bodies, overlong refresh tokens, security headers
"""

from __future__ import annotations

import pytest

from api.limiter import limiter

PASSWORD = "Password123"  # noqa: S105 # nosec B105


def _register(client, email="alice@example.com", password=PASSWORD, name="Alice"):
    return client.post("/api/v1/auth/register", json={"email": email, "password": password, "name": name})


def _login(client, email="alice@example.com", password=PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


def _bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_201_without_hash(self, api_client):
        resp = _register(api_client, email="  Alice@Example.COM ")
        assert resp.status_code == 201
        data = resp.json()
        assert set(data) == {"id", "email", "name", "role", "created_at"}
        assert data["email"] == "alice@example.com"
        assert data["role"] == "user"

    def test_duplicate_email_is_409(self, api_client):
        _register(api_client)
        resp = _register(api_client, email="ALICE@example.com")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    @pytest.mark.parametrize(
        "body",
        [
            {"email": "not-an-email", "password": PASSWORD, "name": "A"},
            {"email": "a@example.com", "password": "short1", "name": "A"},
            {"email": "a@example.com", "password": "nodigitshere", "name": "A"},
            {"email": "a@example.com", "password": "12345678", "name": "A"},
            {"email": "a@example.com", "password": "a1" * 40, "name": "A"},
            {"email": "a@example.com", "password": PASSWORD, "name": "   "},
            {"email": "a@example.com", "password": PASSWORD, "name": "n" * 101},
            {"email": "a@example.com", "password": PASSWORD},
        ],
    )
    def test_invalid_input_is_422(self, api_client, body):
        resp = api_client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "validation_error"

    def test_validation_error_does_not_echo_password(self, api_client):
        resp = api_client.post(
            "/api/v1/auth/register", json={"email": "a@example.com", "password": "secretnodigit", "name": "A"}
        )
        assert resp.status_code == 422
        assert "secretnodigit" not in resp.text


class TestLogin:
    def test_login_returns_pair_with_no_store(self, api_client):
        _register(api_client)
        resp = _login(api_client)
        assert resp.status_code == 200
        data = resp.json()
        assert set(data) == {"access_token", "refresh_token", "expires_in_seconds"}
        assert data["expires_in_seconds"] == 3600
        assert resp.headers["Cache-Control"] == "no-store"

    def test_wrong_password_and_unknown_email_are_identical(self, api_client):
        _register(api_client)
        wrong = _login(api_client, password="WrongPassword1")
        unknown = _login(api_client, email="nobody@example.com")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["message"] == "Invalid email or password."
        assert wrong.headers["WWW-Authenticate"] == "Bearer"


class TestRefreshAndLogout:
    def test_refresh_rotates_and_old_token_is_rejected(self, api_client):
        _register(api_client)
        first = _login(api_client).json()
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert resp.status_code == 200
        assert resp.headers["Cache-Control"] == "no-store"
        assert resp.json()["refresh_token"] != first["refresh_token"]

        replay = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["message"] == "Invalid refresh token."

    def test_refresh_rejects_access_token(self, api_client):
        _register(api_client)
        pair = _login(api_client).json()
        resp = api_client.post("/api/v1/auth/refresh", json={"refresh_token": pair["access_token"]})
        assert resp.status_code == 401

    def test_empty_refresh_token_is_422(self, api_client):
        assert api_client.post("/api/v1/auth/refresh", json={"refresh_token": ""}).status_code == 422

    def test_logout_requires_access_token(self, api_client):
        _register(api_client)
        pair = _login(api_client).json()
        resp = api_client.post("/api/v1/auth/logout", json={"refresh_token": pair["refresh_token"]})
        assert resp.status_code == 401

    def test_logout_revokes_refresh_token(self, api_client):
        _register(api_client)
        pair = _login(api_client).json()
        headers = _bearer(pair["access_token"])
        resp = api_client.post("/api/v1/auth/logout", json={"refresh_token": pair["refresh_token"]}, headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"message": "Logged out."}
        # Idempotent
        again = api_client.post("/api/v1/auth/logout", json={"refresh_token": pair["refresh_token"]}, headers=headers)
        assert again.status_code == 200
        refreshed = api_client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]})
        assert refreshed.status_code == 401


class TestIdentityEndpoints:
    def test_me_returns_identity(self, api_client):
        user_id = _register(api_client).json()["id"]
        token = _login(api_client).json()["access_token"]
        resp = api_client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json() == {"id": user_id, "email": "alice@example.com", "name": "Alice", "role": "user"}

    def test_me_without_token_is_401(self, api_client):
        resp = api_client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_me_with_refresh_token_is_401(self, api_client):
        _register(api_client)
        refresh = _login(api_client).json()["refresh_token"]
        assert api_client.get("/api/v1/auth/me", headers=_bearer(refresh)).status_code == 401

    def test_session_anonymous(self, api_client):
        resp = api_client.get("/api/v1/auth/session")
        assert resp.status_code == 200
        assert resp.json() == {"authenticated": False, "user": None}

    def test_session_with_bad_token_is_still_200(self, api_client):
        resp = api_client.get("/api/v1/auth/session", headers=_bearer("garbage"))
        assert resp.status_code == 200
        assert resp.json()["authenticated"] is False

    def test_session_authenticated(self, api_client):
        _register(api_client)
        token = _login(api_client).json()["access_token"]
        data = api_client.get("/api/v1/auth/session", headers=_bearer(token)).json()
        assert data["authenticated"] is True
        assert data["user"]["email"] == "alice@example.com"


class TestRevocationEndpoints:
    def test_owner_can_revoke_own_tokens(self, api_client):
        user_id = _register(api_client).json()["id"]
        pairs = [_login(api_client).json() for _ in range(2)]
        resp = api_client.post(f"/api/v1/auth/users/{user_id}/revoke-tokens", headers=_bearer(pairs[0]["access_token"]))
        assert resp.status_code == 200
        assert resp.json() == {"revoked": 2}
        for pair in pairs:
            assert api_client.post("/api/v1/auth/refresh", json={"refresh_token": pair["refresh_token"]}).status_code == 401

    def test_other_user_is_forbidden(self, api_client):
        victim_id = _register(api_client).json()["id"]
        _register(api_client, email="mallory@example.com", name="Mallory")
        token = _login(api_client, email="mallory@example.com").json()["access_token"]
        resp = api_client.post(f"/api/v1/auth/users/{victim_id}/revoke-tokens", headers=_bearer(token))
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_admin_can_revoke_any_account(self, api_client, make_admin):
        victim_id = _register(api_client).json()["id"]
        _login(api_client)
        admin_email = make_admin(api_client)
        token = _login(api_client, email=admin_email).json()["access_token"]
        resp = api_client.post(f"/api/v1/auth/users/{victim_id}/revoke-tokens", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json() == {"revoked": 1}

    def test_revoke_without_token_is_401(self, api_client):
        assert api_client.post("/api/v1/auth/users/whoever/revoke-tokens").status_code == 401

    def test_purge_requires_admin(self, api_client, make_admin):
        _register(api_client)
        user_token = _login(api_client).json()["access_token"]
        assert api_client.post("/api/v1/auth/admin/purge-tokens", headers=_bearer(user_token)).status_code == 403

        admin_email = make_admin(api_client)
        admin_pair = _login(api_client, email=admin_email).json()
        api_client.post("/api/v1/auth/refresh", json={"refresh_token": admin_pair["refresh_token"]})
        resp = api_client.post("/api/v1/auth/admin/purge-tokens", headers=_bearer(admin_pair["access_token"]))
        assert resp.status_code == 200
        assert resp.json() == {"purged": 1}


class TestRateLimit:
    def test_login_is_rate_limited(self, api_client):
        """The sixth login attempt inside a minute from one address is rejected with 429."""
        limiter.reset()
        limiter.enabled = True
        try:
            statuses = [_login(api_client, email="nobody@example.com").status_code for _ in range(6)]
            assert statuses[:5] == [401] * 5
            assert statuses[5] == 429
            last = _login(api_client, email="nobody@example.com")
            assert last.json()["error"]["code"] == "rate_limited"
            assert "Retry-After" in last.headers
        finally:
            limiter.enabled = False
            limiter.reset()


class TestSessionLifecycle:
    def test_register_login_rotate_logout_then_refresh_fails(self, api_client):
        """Logging out the rotated token ends the session; neither token refreshes afterwards."""
        created = _register(api_client)
        assert created.status_code == 201
        assert created.json()["role"] == "user"

        login = _login(api_client)
        assert login.status_code == 200
        first = login.json()
        assert first["expires_in_seconds"] == 3600

        rotated = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert rotated.status_code == 200
        second = rotated.json()

        replay = api_client.post("/api/v1/auth/refresh", json={"refresh_token": first["refresh_token"]})
        assert replay.status_code == 401

        logout = api_client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": second["refresh_token"]},
            headers=_bearer(second["access_token"]),
        )
        assert logout.status_code == 200
        assert logout.json() == {"message": "Logged out."}

        final = api_client.post("/api/v1/auth/refresh", json={"refresh_token": second["refresh_token"]})
        assert final.status_code == 401
        assert final.json()["error"]["code"] == "unauthorized"


class TestRequestHardening:
    def test_oversized_body_is_413(self, api_client):
        body = b'{"email": "a@example.com", "password": "' + b"x" * (70 * 1024) + b'"}'
        resp = api_client.post("/api/v1/auth/login", content=body, headers={"Content-Type": "application/json"})
        assert resp.status_code == 413
        assert resp.json()["error"]["code"] == "payload_too_large"

    def test_body_under_limit_reaches_route(self, api_client):
        body = b'{"email": "a@example.com", "password": "' + b"x" * 1024 + b'"}'
        resp = api_client.post("/api/v1/auth/login", content=body, headers={"Content-Type": "application/json"})
        # Password longer than 72 characters fails validation, not the size cap.
        assert resp.status_code == 422

    @pytest.mark.parametrize("path", ["/api/v1/auth/refresh", "/api/v1/auth/logout"])
    def test_overlong_refresh_token_is_422(self, api_client, path):
        _register(api_client)
        token = _login(api_client).json()["access_token"]
        resp = api_client.post(path, json={"refresh_token": "x" * 5000}, headers=_bearer(token))
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_security_headers_on_success_and_error(self, api_client):
        for resp in (api_client.get("/api/v1/health"), api_client.get("/api/v1/auth/me")):
            assert resp.headers["X-Content-Type-Options"] == "nosniff"
            assert resp.headers["X-Frame-Options"] == "DENY"
            assert resp.headers["Referrer-Policy"] == "no-referrer"
