"""
tests/test_api_auth.py -- Integration tests for /api/v1/auth/*.

Runs through the real ASGI stack (middleware, dependencies, exception
handlers) with the isolated stack from conftest.

Coverage:
  - register: 201 unapproved, 400 TOO_EASY, 409 duplicate, 422 malformed
  - login: cookie attributes, unknown email vs wrong password identical,
    401 unapproved, no-store caching header
  - me: data=null without a session, current session with one, dead cookie
    cleared on the response
  - logout: server-side revocation, not just a cleared cookie
  - docs: protected by the "user" scope
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from auth.models import UserRole
from auth.service import AuthService
from tests.conftest import (
    OTHER_STRONG_PASSWORD,
    STRONG_PASSWORD,
    WEAK_PASSWORD,
    FrozenClock,
    forged_token,
    login,
    make_user,
    set_cookie_headers,
)


class TestRegister:
    def test_register_returns_unapproved_user(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={"email": "ann@example.com", "password": STRONG_PASSWORD})
        assert resp.status_code == 201
        data = resp.json()["data"]
        assert data["email"] == "ann@example.com"
        assert data["role"] == "USER"
        assert data["is_approved"] is False
        assert "password_hash" not in data
        assert STRONG_PASSWORD not in resp.text

    def test_weak_password_is_400_too_easy(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={"email": "ann@example.com", "password": WEAK_PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "weak_credential"
        assert resp.json()["error"]["message"] == "TOO_EASY"

    def test_duplicate_is_409(self, client: TestClient) -> None:
        body = {"email": "ann@example.com", "password": STRONG_PASSWORD}
        assert client.post("/api/v1/auth/register", json=body).status_code == 201
        resp = client.post("/api/v1/auth/register", json=body)
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "conflict"

    def test_malformed_email_is_422_without_echo(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={"email": "not-an-email", "password": "hunter2-very-secret"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"
        assert "hunter2-very-secret" not in resp.text

    def test_overlong_password_is_422(self, client: TestClient) -> None:
        resp = client.post("/api/v1/auth/register", json={"email": "ann@example.com", "password": "x" * 73})
        assert resp.status_code == 422


class TestLogin:
    def test_login_sets_encrypted_cookie(self, client: TestClient, service: AuthService) -> None:
        user = make_user(service, "ann@example.com", role=UserRole.ADMIN)
        resp = login(client, "ann@example.com")
        assert resp.status_code == 200
        body = resp.json()
        assert body["user_id"] == user.id
        assert body["role"] == "ADMIN"
        assert "valid_until" in body
        assert resp.headers["cache-control"] == "no-store"

        headers = set_cookie_headers(resp)
        assert len(headers) == 1
        lowered = headers[0].lower()
        assert lowered.startswith("session=")
        assert "httponly" in lowered
        assert "samesite=lax" in lowered

        value = client.cookies.get("session")
        assert value
        assert service.codec.decode(value) is not None
        # The raw session id never appears in the response.
        assert service.codec.decode(value) not in resp.text

    def test_unknown_email_and_wrong_password_look_the_same(self, client: TestClient, service: AuthService) -> None:
        make_user(service, "ann@example.com")
        unknown = login(client, "nobody@example.com")
        wrong = login(client, "ann@example.com", OTHER_STRONG_PASSWORD)
        assert unknown.status_code == wrong.status_code == 404
        assert unknown.json() == wrong.json()
        assert set_cookie_headers(unknown) == set_cookie_headers(wrong) == []

    def test_unapproved_is_401(self, client: TestClient) -> None:
        client.post("/api/v1/auth/register", json={"email": "ann@example.com", "password": STRONG_PASSWORD})
        resp = login(client, "ann@example.com")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unapproved"
        assert resp.json()["error"]["message"] == "You're not approved"
        assert client.cookies.get("session") is None


class TestMe:
    def test_anonymous_gets_null(self, client: TestClient) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() == {"data": None}
        assert set_cookie_headers(resp) == []

    def test_logged_in_gets_session(self, client: TestClient, service: AuthService) -> None:
        user = make_user(service, "ann@example.com")
        login(client, "ann@example.com")
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["id"] == user.id
        assert data["user"]["email"] == "ann@example.com"
        assert "valid_until" in data
        assert "id" not in data

    def test_garbage_cookie_is_cleared(self, client: TestClient) -> None:
        client.cookies.set("session", "garbage")
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() == {"data": None}
        headers = set_cookie_headers(resp)
        assert any(h.startswith("session=") and "max-age=0" in h.lower() for h in headers)

    @pytest.mark.parametrize("alg", ["A128KW", "RSA-OAEP"])
    def test_forged_key_algorithm_reads_as_anonymous(self, client: TestClient, alg: str) -> None:
        """A cookie whose header names another key algorithm is just an invalid cookie, not a 500."""
        client.cookies.set("session", forged_token({"alg": alg, "enc": "A128GCM"}))
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 200
        assert resp.json() == {"data": None}
        assert any(h.startswith("session=") and "max-age=0" in h.lower() for h in set_cookie_headers(resp))

    def test_expired_session_reads_as_anonymous(
        self, client: TestClient, service: AuthService, clock: FrozenClock
    ) -> None:
        make_user(service, "ann@example.com")
        login(client, "ann@example.com")
        clock.advance(hours=25)
        assert client.get("/api/v1/auth/me").json() == {"data": None}


class TestLogout:
    def test_logout_revokes_server_side(self, client: TestClient, service: AuthService) -> None:
        make_user(service, "ann@example.com")
        login(client, "ann@example.com")
        stolen = client.cookies.get("session")

        resp = client.post("/api/v1/auth/logout")
        assert resp.status_code == 200
        assert any("max-age=0" in h.lower() for h in set_cookie_headers(resp))

        # Replaying the old cookie value no longer authenticates.
        client.cookies.clear()
        client.cookies.set("session", stolen)
        assert client.get("/api/v1/auth/me").json() == {"data": None}

    def test_logout_without_session(self, client: TestClient) -> None:
        assert client.post("/api/v1/auth/logout").status_code == 200


class TestDocs:
    def test_docs_require_login(self, client: TestClient) -> None:
        resp = client.get("/docs")
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthenticated"

    def test_docs_available_when_logged_in(self, client: TestClient, service: AuthService) -> None:
        make_user(service, "ann@example.com")
        login(client, "ann@example.com")
        assert client.get("/docs").status_code == 200
