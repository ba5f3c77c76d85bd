"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing") with a
    FixedClock, so tests can move time forward for expiry and lockout.
  - TestingConfig points at in-memory SQLite unless TEST_DATABASE_URL is set.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order, the clock is
    reset to wall-clock time and the rate limiter counters are cleared.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)       → account dict
  - mark_verified(app, email)   → flips is_verified directly in the DB
  - login(client, ...)          → dict with account + tokens
  - auth_headers(token)         → {"Authorization": "Bearer <token>"}
"""

from __future__ import annotations

import pytest
from sqlalchemy import delete, select

from backend.accounts import create_app
from backend.accounts.clock import FixedClock, utcnow
from backend.accounts.extensions import db as _db, limiter
from backend.accounts.models import Account, RefreshToken

PASSWORD = "Aa1!aaaa"


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def clock():
    return FixedClock()


@pytest.fixture(scope="session")
def app(clock):
    flask_app = create_app("testing", clock=clock)

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app, clock):
    """
    Resets the clock and the rate limiter before each test and deletes all
    rows after it.

    refresh_tokens are deleted before accounts (CASCADE would handle it,
    but be explicit).
    """
    clock.set(utcnow())
    with app.app_context():
        limiter.reset()

    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.execute(delete(RefreshToken))
        _db.session.execute(delete(Account))
        _db.session.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    """The Flask-SQLAlchemy session inside an app context."""
    with app.app_context():
        yield _db.session


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(client, email: str = "a@x.com", password: str = PASSWORD) -> dict:
    """Registers a new account and returns the account dict."""
    resp = client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]["account"]


def get_account(app, email: str) -> Account:
    """Loads the Account row for `email` (detached from any request)."""
    with app.app_context():
        account = _db.session.execute(
            select(Account).where(Account.email == email)
        ).scalar_one()
        _db.session.expunge(account)
        return account


def mark_verified(app, email: str) -> None:
    """Stands in for the email-verification flow."""
    with app.app_context():
        account = _db.session.execute(
            select(Account).where(Account.email == email)
        ).scalar_one()
        account.is_verified = True
        account.verification_token = None
        account.verification_token_expires = None
        _db.session.commit()


def login(client, email: str = "a@x.com", password: str = PASSWORD) -> dict:
    """Logs in and returns {"account": {...}, "access_token", "refresh_token"}."""
    resp = client.post(
        "/api/v1/auth/login",
        json={"email": email, "password": password},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def register_verified(app, client, email: str = "a@x.com", password: str = PASSWORD) -> dict:
    account = register(client, email=email, password=password)
    mark_verified(app, email)
    return account


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}
