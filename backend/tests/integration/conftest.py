"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against the database in TEST_DATABASE_URL (default: in-memory
    SQLite, shared across the session through Flask-SQLAlchemy's StaticPool).
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - register(client, ...)        → dict with user + tokens
  - login(client, ...)           → dict with user + tokens
  - refresh(client, token, ...)  → HTTP response
  - auth_headers(token)          → {"Authorization": "Bearer <token>"}
  - insert_token(...)            → RefreshToken row written straight to the DB

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

import pytest
from sqlalchemy import text

from backend.app import create_app
from backend.app.extensions import db as _db
from backend.app.models.refresh_token import RefreshToken, utcnow


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test
    session, creates every table, and drops them at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order, and resets any config
    a test may have flipped.
    """
    yield

    app.config["REFRESH_TOKEN_REVOKE_ALL_ON_REUSE"] = False

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test
        _db.session.execute(text("DELETE FROM refresh_tokens"))
        _db.session.execute(text("DELETE FROM user_roles"))
        _db.session.execute(text("DELETE FROM users"))
        _db.session.execute(text("DELETE FROM roles"))
        _db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client / context fixtures
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def app_ctx(app):
    """Pushes an app context so tests can call services with db.session directly."""
    with app.app_context():
        yield _db.session


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def register(
    client,
    username: str = "alice",
    email: str | None = None,
    password: str = "Password1",
    headers: dict | None = None,
) -> dict:
    """
    Registers a new user and returns the full response data dict.
    Returns: {"user": {...}, "access_token", "refresh_token", "token_type", "expires_in"}
    """
    if email is None:
        email = f"{username}@test.com"
    resp = client.post(
        "/api/v1/auth/register",
        json={"username": username, "email": email, "password": password},
        headers=headers or {},
    )
    assert resp.status_code == 201, f"register failed: {resp.get_json()}"
    return resp.get_json()["data"]


def login(
    client,
    username: str,
    password: str = "Password1",
    headers: dict | None = None,
) -> dict:
    """Logs in a user and returns the response data dict."""
    resp = client.post(
        "/api/v1/auth/login",
        json={"username": username, "password": password},
        headers=headers or {},
    )
    assert resp.status_code == 200, f"login failed: {resp.get_json()}"
    return resp.get_json()["data"]


def refresh(client, refresh_token: str, headers: dict | None = None):
    """Calls POST /auth/refresh and returns the raw response."""
    return client.post(
        "/api/v1/auth/refresh",
        json={"refresh_token": refresh_token},
        headers=headers or {},
    )


def auth_headers(token: str) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {token}"}


def insert_token(
    session,
    user_id: int,
    *,
    expires_at: datetime | None = None,
    revoked: bool = False,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> RefreshToken:
    """Writes a refresh token row directly, bypassing the issuer, and commits."""
    record = RefreshToken(
        token=str(uuid.uuid4()),
        user_id=user_id,
        expires_at=expires_at or (utcnow() + timedelta(days=7)),
        revoked=revoked,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    session.add(record)
    session.commit()
    return record
