"""
tests/integration/test_auth.py — Integration tests for the authentication endpoints.

Endpoints covered:
  POST /auth/register      → 201
  POST /auth/verify-email  → 200
  POST /auth/login         → 200
  POST /auth/refresh       → 200
  POST /auth/logout        → 200
  POST /auth/logout-all    → 200
  GET  /auth/me            → 200
  GET  /auth/health        → 200

Error cases:
  DUPLICATE_EMAIL             409
  INVALID_CREDENTIALS         401
  ACCOUNT_LOCKED              403
  EMAIL_NOT_VERIFIED          403
  REFRESH_TOKEN_INVALID       401
  ACCESS_TOKEN_INVALID        401
  TOKEN_MISSING / TOKEN_INVALID 401
  MISSING_FIELD / INVALID_FIELD 400
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .conftest import (
    PASSWORD,
    auth_headers,
    get_account,
    login,
    mark_verified,
    register,
    register_verified,
)


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/register
# ═══════════════════════════════════════════════════════════════════════════

class TestRegister:

    def test_register_success_returns_201_with_account_view(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "email": "a@x.com",
            "password": PASSWORD,
        })
        assert resp.status_code == 201
        account = resp.get_json()["data"]["account"]
        assert set(account) == {"id", "email", "is_verified", "created_at", "updated_at"}
        assert account["email"] == "a@x.com"
        assert account["is_verified"] is False
        assert account["id"]

    def test_register_does_not_issue_tokens(self, client):
        data = client.post("/api/v1/auth/register", json={
            "email": "a@x.com", "password": PASSWORD,
        }).get_json()["data"]
        assert "access_token" not in data
        assert "refresh_token" not in data

    def test_register_stores_hash_and_verification_token(self, app, client):
        register(client)
        account = get_account(app, "a@x.com")
        assert account.password_hash != PASSWORD
        assert account.password_hash.startswith("$2b$")
        assert account.verification_token
        assert account.failed_login_attempts == 0
        assert account.locked_until is None

    def test_duplicate_email_returns_409(self, client):
        register(client)
        resp = client.post("/api/v1/auth/register", json={
            "email": "a@x.com", "password": PASSWORD,
        })
        assert resp.status_code == 409
        error = resp.get_json()["error"]
        assert error["code"] == "DUPLICATE_EMAIL"
        assert error["field"] == "email"

    def test_email_is_stored_case_sensitive(self, client):
        register(client, email="a@x.com")
        register(client, email="A@x.com")

    def test_weak_password_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "email": "a@x.com", "password": "password1",
        })
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "INVALID_FIELD"
        assert resp.get_json()["error"]["field"] == "password"

    def test_password_longer_than_72_bytes_registers_and_logs_in(self, app, client):
        long_password = "Aa1!" + "a" * 80
        register_verified(app, client, password=long_password)

        data = login(client, password=long_password)
        assert data["account"]["email"] == "a@x.com"

    def test_invalid_email_format_returns_400(self, client):
        resp = client.post("/api/v1/auth/register", json={
            "email": "notanemail", "password": PASSWORD,
        })
        assert resp.status_code == 400

    def test_missing_fields_return_400(self, client):
        resp = client.post("/api/v1/auth/register", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "MISSING_FIELD"


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/verify-email
# ═══════════════════════════════════════════════════════════════════════════

class TestVerifyEmail:

    def test_verify_email_then_login(self, app, client):
        register(client)
        token = get_account(app, "a@x.com").verification_token

        resp = client.post("/api/v1/auth/verify-email", json={"token": token})

        assert resp.status_code == 200
        assert resp.get_json()["data"]["account"]["is_verified"] is True
        assert login(client)["access_token"]

    def test_updated_at_follows_the_app_clock(self, app, client, clock):
        created = register(client)
        token = get_account(app, "a@x.com").verification_token
        clock.advance(timedelta(hours=1))

        resp = client.post("/api/v1/auth/verify-email", json={"token": token})

        account = resp.get_json()["data"]["account"]
        created_at = datetime.fromisoformat(account["created_at"])
        updated_at = datetime.fromisoformat(account["updated_at"])
        assert account["created_at"] == created["created_at"]
        assert updated_at - created_at == timedelta(hours=1)

    def test_verification_token_is_single_use(self, app, client):
        register(client)
        token = get_account(app, "a@x.com").verification_token
        client.post("/api/v1/auth/verify-email", json={"token": token})

        resp = client.post("/api/v1/auth/verify-email", json={"token": token})

        assert resp.status_code == 400
        assert resp.get_json()["error"]["code"] == "VERIFICATION_TOKEN_INVALID"

    def test_verification_token_expires_after_24_hours(self, app, client, clock):
        register(client)
        token = get_account(app, "a@x.com").verification_token
        clock.advance(timedelta(hours=24))

        resp = client.post("/api/v1/auth/verify-email", json={"token": token})

        assert resp.status_code == 400


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/login
# ═══════════════════════════════════════════════════════════════════════════

class TestLogin:

    def test_unverified_login_returns_403(self, client):
        register(client)
        resp = client.post("/api/v1/auth/login", json={
            "email": "a@x.com", "password": PASSWORD,
        })
        assert resp.status_code == 403
        assert resp.get_json()["error"]["code"] == "EMAIL_NOT_VERIFIED"

    def test_scenario_register_verify_login(self, app, client):
        account = register(client)
        assert account["is_verified"] is False

        resp = client.post("/api/v1/auth/login", json={
            "email": "a@x.com", "password": PASSWORD,
        })
        assert resp.get_json()["error"]["code"] == "EMAIL_NOT_VERIFIED"

        mark_verified(app, "a@x.com")
        data = login(client)
        assert data["access_token"]
        assert data["refresh_token"]
        assert data["account"]["id"] == account["id"]
        assert data["account"]["is_verified"] is True

    def test_wrong_password_returns_401(self, app, client):
        register_verified(app, client)
        resp = client.post("/api/v1/auth/login", json={
            "email": "a@x.com", "password": "Wrong1!pw",
        })
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "INVALID_CREDENTIALS"

    def test_unknown_email_same_response_as_wrong_password(self, app, client):
        register_verified(app, client)
        wrong = client.post("/api/v1/auth/login", json={
            "email": "a@x.com", "password": "Wrong1!pw",
        })
        unknown = client.post("/api/v1/auth/login", json={
            "email": "nobody@x.com", "password": "Wrong1!pw",
        })
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.get_json() == unknown.get_json()

    def test_failed_attempt_is_persisted(self, app, client):
        register_verified(app, client)
        client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "Wrong1!pw"})
        client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "Wrong1!pw"})
        assert get_account(app, "a@x.com").failed_login_attempts == 2

    def test_five_failures_lock_the_account(self, app, client):
        register_verified(app, client)
        for _ in range(5):
            resp = client.post("/api/v1/auth/login", json={
                "email": "a@x.com", "password": "Wrong1!pw",
            })
            assert resp.status_code == 401

        resp = client.post("/api/v1/auth/login", json={
            "email": "a@x.com", "password": PASSWORD,
        })

        assert resp.status_code == 403
        error = resp.get_json()["error"]
        assert error["code"] == "ACCOUNT_LOCKED"
        assert 0 < error["retry_after_seconds"] <= 15 * 60
        assert "failed_login_attempts" not in error

    def test_lock_lapses_and_success_resets_counter(self, app, client, clock):
        register_verified(app, client)
        for _ in range(5):
            client.post("/api/v1/auth/login", json={"email": "a@x.com", "password": "Wrong1!pw"})

        clock.advance(timedelta(minutes=15))
        data = login(client)

        assert data["access_token"]
        account = get_account(app, "a@x.com")
        assert account.failed_login_attempts == 0
        assert account.locked_until is None

    def test_each_login_is_a_separate_session(self, app, client):
        register_verified(app, client)
        first = login(client)
        second = login(client)
        assert first["refresh_token"] != second["refresh_token"]


# ═══════════════════════════════════════════════════════════════════════════
# POST /auth/refresh, /auth/logout, /auth/logout-all
# ═══════════════════════════════════════════════════════════════════════════

class TestSessions:

    def test_refresh_returns_new_access_token(self, app, client, clock):
        register_verified(app, client)
        tokens = login(client)
        clock.advance(timedelta(seconds=1))

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert resp.status_code == 200
        new_access = resp.get_json()["data"]["access_token"]
        assert new_access != tokens["access_token"]
        me = client.get("/api/v1/auth/me", headers=auth_headers(new_access))
        assert me.status_code == 200

    def test_refresh_token_can_be_reused_until_expiry(self, app, client):
        register_verified(app, client)
        tokens = login(client)
        for _ in range(3):
            resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
            assert resp.status_code == 200

    def test_refresh_with_never_issued_token_returns_401(self, client):
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": "never-issued"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_refresh_after_expiry_returns_401(self, app, client, clock):
        register_verified(app, client)
        tokens = login(client)
        clock.advance(timedelta(days=7))

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})

        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_access_token_rejected_by_refresh(self, app, client):
        register_verified(app, client)
        tokens = login(client)
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
        assert resp.status_code == 401

    def test_logout_then_refresh_fails(self, app, client):
        register_verified(app, client)
        tokens = login(client)

        resp = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "REFRESH_TOKEN_INVALID"

    def test_logout_is_idempotent(self, app, client):
        register_verified(app, client)
        tokens = login(client)
        for _ in range(2):
            resp = client.post("/api/v1/auth/logout", json={"refresh_token": tokens["refresh_token"]})
            assert resp.status_code == 200

    def test_logout_without_token_succeeds(self, client):
        assert client.post("/api/v1/auth/logout", json={}).status_code == 200

    def test_logout_only_revokes_that_session(self, app, client):
        register_verified(app, client)
        phone = login(client)
        laptop = login(client)

        client.post("/api/v1/auth/logout", json={"refresh_token": phone["refresh_token"]})

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": laptop["refresh_token"]})
        assert resp.status_code == 200

    def test_logout_all_revokes_every_session(self, app, client):
        register_verified(app, client)
        sessions = [login(client) for _ in range(3)]

        resp = client.post(
            "/api/v1/auth/logout-all",
            headers=auth_headers(sessions[0]["access_token"]),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["revoked"] == 3

        for session in sessions:
            resp = client.post("/api/v1/auth/refresh", json={"refresh_token": session["refresh_token"]})
            assert resp.status_code == 401

    def test_logout_all_leaves_other_accounts_alone(self, app, client):
        register_verified(app, client, email="a@x.com")
        register_verified(app, client, email="b@x.com")
        a = login(client, email="a@x.com")
        b = login(client, email="b@x.com")

        client.post("/api/v1/auth/logout-all", headers=auth_headers(a["access_token"]))

        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": b["refresh_token"]})
        assert resp.status_code == 200

    def test_logout_all_requires_auth(self, client):
        resp = client.post("/api/v1/auth/logout-all")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"


# ═══════════════════════════════════════════════════════════════════════════
# GET /auth/me (access-token validation)
# ═══════════════════════════════════════════════════════════════════════════

class TestMe:

    def test_me_returns_account_view(self, app, client):
        register_verified(app, client)
        tokens = login(client)

        resp = client.get("/api/v1/auth/me", headers=auth_headers(tokens["access_token"]))

        assert resp.status_code == 200
        account = resp.get_json()["data"]["account"]
        assert account["email"] == "a@x.com"
        assert "password_hash" not in account
        assert "verification_token" not in account

    def test_missing_header_returns_token_missing(self, client):
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_MISSING"

    def test_malformed_header_returns_token_invalid(self, client):
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "TOKEN_INVALID"

    def test_garbage_token_returns_access_token_invalid(self, client):
        resp = client.get("/api/v1/auth/me", headers=auth_headers("not.a.jwt"))
        assert resp.status_code == 401
        assert resp.get_json()["error"]["code"] == "ACCESS_TOKEN_INVALID"

    def test_expired_access_token_says_expired(self, app, client, clock):
        register_verified(app, client)
        tokens = login(client)
        clock.advance(timedelta(minutes=30))

        resp = client.get("/api/v1/auth/me", headers=auth_headers(tokens["access_token"]))

        assert resp.status_code == 401
        error = resp.get_json()["error"]
        assert error["code"] == "ACCESS_TOKEN_INVALID"
        assert "expired" in error["message"]

    def test_refresh_token_is_not_an_access_token(self, app, client):
        register_verified(app, client)
        tokens = login(client)
        resp = client.get("/api/v1/auth/me", headers=auth_headers(tokens["refresh_token"]))
        assert resp.status_code == 401


def test_health(client):
    resp = client.get("/api/v1/auth/health")
    assert resp.status_code == 200
    assert resp.get_json()["data"]["status"] == "ok"


def test_unknown_route_returns_json_404(client):
    resp = client.get("/api/v1/auth/nope")
    assert resp.status_code == 404
    assert resp.get_json()["error"]["code"] == "NOT_FOUND"
