"""
Unit tests for token_service. The store is patched out; only a bare Flask app
context is pushed so current_app.config resolves.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import jwt
import pytest
from flask import Flask

from backend.app.errors import (
    ConfigurationError,
    ErrorCode,
    RefreshTokenExpired,
    RefreshTokenNotFound,
    RefreshTokenRevoked,
)
from backend.app.models.refresh_token import RefreshToken
from backend.app.services import token_service

KEY = "unit-test-signing-key"
NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def app():
    flask_app = Flask(__name__)
    flask_app.config.update(
        JWT_SECRET_KEY=KEY,
        JWT_ALGORITHM="HS256",
        JWT_ISSUER="store-api",
        JWT_ACCESS_TOKEN_EXPIRES=timedelta(minutes=15),
        JWT_REFRESH_TOKEN_EXPIRES=timedelta(days=7),
        REFRESH_TOKEN_REVOKE_ALL_ON_REUSE=False,
    )
    with flask_app.app_context():
        yield flask_app


@pytest.fixture
def store(monkeypatch):
    """Replaces every token_store function token_service calls."""
    fake = MagicMock()
    for name in ("save", "find_by_token", "revoke_if_active", "revoke", "revoke_all"):
        monkeypatch.setattr(token_service.token_store, name, getattr(fake, name))
    return fake


@pytest.fixture
def alerts(monkeypatch):
    fake = MagicMock()
    monkeypatch.setattr(
        token_service.security_alerts,
        "notify_possible_account_compromise",
        fake.notify_possible_account_compromise,
    )
    monkeypatch.setattr(
        token_service.security_alerts,
        "notify_new_device_login",
        fake.notify_new_device_login,
    )
    return fake


def _user(**overrides):
    values = dict(id=3, email="alice@example.com", username="alice", role_names=["ROLE_USER"])
    values.update(overrides)
    return SimpleNamespace(**values)


# ═══════════════════════════════════════════════════════════════════════════
# Issuer
# ═══════════════════════════════════════════════════════════════════════════

class TestIssuer:

    def test_access_token_claims(self, app):
        token = token_service.create_access_token(_user())

        claims = jwt.decode(token, KEY, algorithms=["HS256"], issuer="store-api")
        assert claims["sub"] == "3"
        assert claims["email"] == "alice@example.com"
        assert claims["username"] == "alice"
        assert claims["roles"] == ["ROLE_USER"]
        assert claims["exp"] - claims["iat"] == 900

    def test_access_tokens_are_distinct(self, app):
        assert token_service.create_access_token(_user(), now=NOW) != \
            token_service.create_access_token(_user(), now=NOW)

    def test_missing_key_is_configuration_error(self, app):
        app.config["JWT_SECRET_KEY"] = ""
        with pytest.raises(ConfigurationError):
            token_service.create_access_token(_user())

    def test_refresh_token_row(self, app, store):
        ua = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) Chrome/126.0.0.0 Safari/537.36"
        record = token_service.create_refresh_token(
            3, MagicMock(), ip_address="10.0.0.1", user_agent=ua, now=NOW,
        )

        assert uuid.UUID(record.token).version == 4
        assert record.expires_at == NOW + timedelta(days=7)
        assert record.revoked is False
        assert record.device_info == "Windows 10 - Chrome - Desktop"
        store.save.assert_called_once()

    def test_pair_shape(self, app, store):
        pair = token_service.issue_token_pair(_user(), MagicMock(), now=NOW)

        assert set(pair) == {"access_token", "refresh_token", "token_type", "expires_in"}
        assert pair["token_type"] == "Bearer"
        assert pair["expires_in"] == 900

    def test_missing_key_writes_nothing(self, app, store):
        app.config["JWT_SECRET_KEY"] = None
        with pytest.raises(ConfigurationError):
            token_service.issue_token_pair(_user(), MagicMock(), now=NOW)
        store.save.assert_not_called()


# ═══════════════════════════════════════════════════════════════════════════
# Rotation failures
# ═══════════════════════════════════════════════════════════════════════════

class TestRotationFailures:

    def test_unknown_token(self, app, store, alerts):
        store.revoke_if_active.return_value = False
        store.find_by_token.return_value = None

        with pytest.raises(RefreshTokenNotFound) as exc:
            token_service.rotate_refresh_token("missing", MagicMock(), now=NOW)

        assert exc.value.code == ErrorCode.REFRESH_TOKEN_NOT_FOUND
        assert exc.value.http_status == 401

    @pytest.mark.parametrize("revoked", [False, True])
    def test_expired_takes_precedence(self, app, store, alerts, revoked):
        store.revoke_if_active.return_value = False
        store.find_by_token.return_value = RefreshToken(
            token="t", user_id=3, expires_at=NOW - timedelta(seconds=1), revoked=revoked,
        )

        with pytest.raises(RefreshTokenExpired):
            token_service.rotate_refresh_token("t", MagicMock(), now=NOW)
        alerts.notify_possible_account_compromise.assert_not_called()

    def test_revoked_alerts_without_mass_revocation(self, app, store, alerts):
        store.revoke_if_active.return_value = False
        store.find_by_token.return_value = RefreshToken(
            token="t", user_id=3, expires_at=NOW + timedelta(days=1), revoked=True,
        )

        with pytest.raises(RefreshTokenRevoked):
            token_service.rotate_refresh_token("t", MagicMock(), ip_address="1.2.3.4", now=NOW)

        alerts.notify_possible_account_compromise.assert_called_once()
        assert alerts.notify_possible_account_compromise.call_args.args[0] == 3
        store.revoke_all.assert_not_called()

    def test_revoked_triggers_mass_revocation_when_enabled(self, app, store, alerts):
        app.config["REFRESH_TOKEN_REVOKE_ALL_ON_REUSE"] = True
        store.revoke_if_active.return_value = False
        store.find_by_token.return_value = RefreshToken(
            token="t", user_id=3, expires_at=NOW + timedelta(days=1), revoked=True,
        )
        session = MagicMock()

        with pytest.raises(RefreshTokenRevoked):
            token_service.rotate_refresh_token("t", session, now=NOW)

        store.revoke_all.assert_called_once_with(3, session)


# ═══════════════════════════════════════════════════════════════════════════
# Rotation success
# ═══════════════════════════════════════════════════════════════════════════

class TestRotationSuccess:

    def _old(self, **overrides):
        values = dict(
            user=_user(),
            ip_address="10.0.0.1",
            user_agent="AgentA",
            device_info="Unknown OS - Unknown Browser - Desktop",
        )
        values.update(overrides)
        return SimpleNamespace(**values)

    def test_new_pair_carries_metadata_forward(self, app, store, alerts):
        store.revoke_if_active.return_value = True
        store.find_by_token.return_value = self._old()

        pair = token_service.rotate_refresh_token("old", MagicMock(), now=NOW)

        saved = store.save.call_args.args[0]
        assert saved.token == pair["refresh_token"]
        assert saved.ip_address == "10.0.0.1"
        assert saved.user_agent == "AgentA"
        assert saved.expires_at == NOW + timedelta(days=7)
        alerts.notify_new_device_login.assert_not_called()

    def test_unfamiliar_origin_sends_notice(self, app, store, alerts):
        store.revoke_if_active.return_value = True
        store.find_by_token.return_value = self._old()

        token_service.rotate_refresh_token(
            "old", MagicMock(), ip_address="10.9.9.9", user_agent="AgentB", now=NOW,
        )

        alerts.notify_new_device_login.assert_called_once_with(3, "10.9.9.9", "AgentB")


# ═══════════════════════════════════════════════════════════════════════════
# Logout
# ═══════════════════════════════════════════════════════════════════════════

class TestLogout:

    def test_revokes_active_token(self, app, store):
        store.revoke.return_value = True
        token_service.revoke_refresh_token("t", MagicMock())
        store.find_by_token.assert_not_called()

    def test_unknown_token(self, app, store):
        store.revoke.return_value = False
        store.find_by_token.return_value = None
        with pytest.raises(RefreshTokenNotFound):
            token_service.revoke_refresh_token("t", MagicMock())

    def test_already_revoked(self, app, store):
        store.revoke.return_value = False
        store.find_by_token.return_value = SimpleNamespace(revoked=True)
        with pytest.raises(RefreshTokenRevoked):
            token_service.revoke_refresh_token("t", MagicMock())
