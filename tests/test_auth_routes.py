"""
tests/test_auth_routes.py -- Integration tests for the /api/v1/auth routes.

These tests exercise the full stack: FastAPI routing -> request validation ->
SessionService -> SQLite stores -> AuthError exception handler -> response
envelope.

Coverage:
  - register: 201 with token pair, 409 on duplicate email, 422 on bad input
  - login: 200 happy path, identical 401 body for wrong password and unknown email
  - refresh-token: rotation, replay rejection, unknown token
  - logout / logout-all: session revocation, auth required
  - me: live identity, 401 once the account is deleted
  - Cache-Control: no-store on every token-bearing response

Fixtures used (from conftest.py):
  - api_client: (client, admin_token, admin_id)
"""

from __future__ import annotations

from fastapi.testclient import TestClient

from tests.conftest import unique_email

PASSWORD = "Secret123!"


def _register(client: TestClient, email: str | None = None, password: str = PASSWORD) -> dict:
    resp = client.post("/api/v1/auth/register", json={"email": email or unique_email(), "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class TestRegister:
    def test_register_returns_session(self, api_client) -> None:
        client, _token, _uid = api_client
        email = unique_email("new")
        resp = client.post(
            "/api/v1/auth/register",
            json={"email": email, "password": PASSWORD, "first_name": "Nia", "last_name": "Lee"},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["user"]["email"] == email
        assert data["user"]["role"] == "CUSTOMER"
        assert data["user"]["first_name"] == "Nia"
        assert "hashed_password" not in data["user"]
        assert data["access_token"] and data["refresh_token"]
        assert data["token_type"] == "bearer"
        assert resp.headers["cache-control"] == "no-store"

    def test_duplicate_email_conflict(self, api_client) -> None:
        client, _token, _uid = api_client
        email = unique_email("dup")
        _register(client, email)
        resp = client.post("/api/v1/auth/register", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "email_in_use"

    def test_short_password_rejected(self, api_client) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/register", json={"email": unique_email(), "password": "short"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_invalid_email_rejected(self, api_client) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/register", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 422


class TestLogin:
    def test_login_success(self, api_client) -> None:
        client, _token, _uid = api_client
        email = unique_email("login")
        registered = _register(client, email)
        resp = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD})
        assert resp.status_code == 200
        data = resp.json()
        assert data["user"]["id"] == registered["user"]["id"]
        assert data["refresh_token"] != registered["refresh_token"]
        assert resp.headers["cache-control"] == "no-store"

    def test_wrong_password_and_unknown_email_look_identical(self, api_client) -> None:
        client, _token, _uid = api_client
        email = unique_email("alice")
        _register(client, email)
        wrong = client.post("/api/v1/auth/login", json={"email": email, "password": "Secret124!"})
        unknown = client.post("/api/v1/auth/login", json={"email": unique_email("bob"), "password": PASSWORD})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["error"]["code"] == "invalid_credentials"


class TestRefreshToken:
    def test_rotation_and_replay(self, api_client) -> None:
        client, _token, _uid = api_client
        session = _register(client)

        first = client.post("/api/v1/auth/refresh-token", json={"refresh_token": session["refresh_token"]})
        assert first.status_code == 200
        assert first.json()["user"]["id"] == session["user"]["id"]
        assert first.headers["cache-control"] == "no-store"

        replay = client.post("/api/v1/auth/refresh-token", json={"refresh_token": session["refresh_token"]})
        assert replay.status_code == 401
        assert replay.json()["error"]["code"] == "invalid_refresh_token"

        second = client.post("/api/v1/auth/refresh-token", json={"refresh_token": first.json()["refresh_token"]})
        assert second.status_code == 200

    def test_unknown_token(self, api_client) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/refresh-token", json={"refresh_token": "nope"})
        assert resp.status_code == 401
        assert resp.headers["www-authenticate"] == "Bearer"

    def test_new_access_token_works(self, api_client) -> None:
        client, _token, _uid = api_client
        session = _register(client)
        rotated = client.post("/api/v1/auth/refresh-token", json={"refresh_token": session["refresh_token"]}).json()
        me = client.get("/api/v1/auth/me", headers=_bearer(rotated["access_token"]))
        assert me.status_code == 200
        assert me.json()["id"] == session["user"]["id"]


class TestLogout:
    def test_logout_requires_auth(self, api_client) -> None:
        client, _token, _uid = api_client
        resp = client.post("/api/v1/auth/logout", json={"refresh_token": "anything"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_logout_revokes_only_presented_session(self, api_client) -> None:
        client, _token, _uid = api_client
        email = unique_email("multi")
        first = _register(client, email)
        second = client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD}).json()

        resp = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": first["refresh_token"]},
            headers=_bearer(first["access_token"]),
        )
        assert resp.status_code == 200
        assert resp.json()["success"] is True

        gone = client.post("/api/v1/auth/refresh-token", json={"refresh_token": first["refresh_token"]})
        assert gone.status_code == 401
        kept = client.post("/api/v1/auth/refresh-token", json={"refresh_token": second["refresh_token"]})
        assert kept.status_code == 200

    def test_logout_unknown_token_is_ok(self, api_client) -> None:
        client, _token, _uid = api_client
        session = _register(client)
        resp = client.post(
            "/api/v1/auth/logout",
            json={"refresh_token": "never-issued"},
            headers=_bearer(session["access_token"]),
        )
        assert resp.status_code == 200

    def test_logout_all(self, api_client) -> None:
        client, _token, _uid = api_client
        email = unique_email("everywhere")
        sessions = [_register(client, email)]
        sessions += [client.post("/api/v1/auth/login", json={"email": email, "password": PASSWORD}).json()]

        resp = client.post("/api/v1/auth/logout-all", headers=_bearer(sessions[0]["access_token"]))
        assert resp.status_code == 200

        for s in sessions:
            r = client.post("/api/v1/auth/refresh-token", json={"refresh_token": s["refresh_token"]})
            assert r.status_code == 401

    def test_logout_all_requires_auth(self, api_client) -> None:
        client, _token, _uid = api_client
        assert client.post("/api/v1/auth/logout-all").status_code == 401


class TestMe:
    def test_me(self, api_client) -> None:
        client, token, uid = api_client
        resp = client.get("/api/v1/auth/me", headers=_bearer(token))
        assert resp.status_code == 200
        assert resp.json()["id"] == uid
        assert resp.json()["role"] == "ADMIN"

    def test_me_unauthenticated(self, api_client) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/auth/me").status_code == 401

    def test_me_with_garbage_token(self, api_client) -> None:
        client, _token, _uid = api_client
        assert client.get("/api/v1/auth/me", headers=_bearer("garbage")).status_code == 401

    def test_me_after_account_deleted(self, api_client) -> None:
        """A correctly signed, unexpired token for a vanished account is unauthenticated."""
        client, admin_token, _uid = api_client
        session = _register(client)
        resp = client.delete(f"/api/v1/users/{session['user']['id']}", headers=_bearer(admin_token))
        assert resp.status_code == 200
        assert client.get("/api/v1/auth/me", headers=_bearer(session["access_token"])).status_code == 401
