"""
services/token_service.py — Token issuing, rotation and revocation.

Responsibilities:
  - Access token creation (JWT, HS256, short TTL, roles embedded)
  - Refresh token creation (opaque UUID4 stored in refresh_tokens)
  - Rotation: exchange a refresh token for a new pair, single use
  - Revocation: logout (one token) and logout-all (every token of a user)

Token design:
  - Access token: JWT signed with JWT_SECRET_KEY, claims iss/sub/email/
    username/roles/iat/exp/jti. Default TTL 15 min.
  - Refresh token: random UUID4 string, looked up by exact match.
    Default TTL 7 days. Rotation = revoke-and-replace, never renewal.

Rotation is a single conditional UPDATE (token_store.revoke_if_active). Only
when it affects zero rows is the row read back to explain why. This makes
"a refresh token rotates at most once" hold for concurrent callers without
any application-level lock.

Layer rules:
  - current_app.config is read for signing key, TTLs and the reuse policy.
  - No flask.request / flask.g; client IP and User-Agent are plain arguments.
  - Only flush here; the route commits.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta

import jwt
from flask import current_app
from sqlalchemy.orm import Session

from backend.app.errors import (
    ConfigurationError,
    RefreshTokenExpired,
    RefreshTokenNotFound,
    RefreshTokenRevoked,
)
from backend.app.models.refresh_token import RefreshToken, as_utc, utcnow
from backend.app.models.user import User
from backend.app.services import security_alerts, token_store
from backend.app.services.device_info import extract_device_info, is_same_origin

logger = logging.getLogger(__name__)

TOKEN_TYPE = "Bearer"


# ── Private helpers ────────────────────────────────────────────────────────

def _signing_key() -> str:
    key = current_app.config.get("JWT_SECRET_KEY")
    if not key:
        raise ConfigurationError("JWT_SECRET_KEY is not configured; refusing to sign tokens.")
    return key


def _access_ttl() -> timedelta:
    return current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]


def _refresh_ttl() -> timedelta:
    return current_app.config["JWT_REFRESH_TOKEN_EXPIRES"]


def _mask(token: str) -> str:
    """Log-safe prefix of a token value."""
    return f"{token[:8]}…"


# ── Token Issuer ───────────────────────────────────────────────────────────

def create_access_token(user: User, now: datetime | None = None) -> str:
    """
    Creates a signed JWT access token for `user`.

    Raises:
      ConfigurationError — no signing key configured.
    """
    key = _signing_key()
    now = now or utcnow()
    payload = {
        "iss": current_app.config.get("JWT_ISSUER", "store-api"),
        "sub": str(user.id),
        "email": user.email,
        "username": user.username,
        "roles": user.role_names,
        "iat": now,
        "exp": now + _access_ttl(),
        # Keeps tokens issued in the same second distinct.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        key,
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def create_refresh_token(
        user_id: int,
        session: Session,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        device_info: str | None = None,
        now: datetime | None = None,
) -> RefreshToken:
    """Inserts a new, un-revoked refresh token row for `user_id` and returns it."""
    now = now or utcnow()
    record = RefreshToken(
        token=str(uuid.uuid4()),
        user_id=user_id,
        expires_at=now + _refresh_ttl(),
        revoked=False,
        created_at=now,
        ip_address=ip_address,
        user_agent=user_agent,
        device_info=device_info or extract_device_info(user_agent),
    )
    token_store.save(record, session)
    logger.info(
        "Refresh token %s issued for user_id=%s from ip=%s",
        _mask(record.token), user_id, ip_address,
    )
    return record


def issue_token_pair(
        user: User,
        session: Session,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        device_info: str | None = None,
        now: datetime | None = None,
) -> dict:
    """
    Mints an access + refresh pair for an authenticated user.

    The access token is signed first so a missing key fails before anything
    is written.
    """
    now = now or utcnow()
    access_token = create_access_token(user, now=now)
    refresh = create_refresh_token(
        user.id,
        session,
        ip_address=ip_address,
        user_agent=user_agent,
        device_info=device_info,
        now=now,
    )
    return {
        "access_token": access_token,
        "refresh_token": refresh.token,
        "token_type": TOKEN_TYPE,
        "expires_in": int(_access_ttl().total_seconds()),
    }


# ── Rotation Handler ───────────────────────────────────────────────────────

def _raise_for_unusable(
        presented: str,
        now: datetime,
        session: Session,
        ip_address: str | None,
        user_agent: str | None,
) -> None:
    """
    Explains why `presented` could not be rotated. Always raises.

    Expiry is checked before revocation: an expired token is reported as
    expired whatever its revoked flag says.
    """
    record = token_store.find_by_token(presented, session)

    if record is None:
        logger.warning("Refresh attempted with unknown token %s", _mask(presented))
        raise RefreshTokenNotFound()

    if record.is_expired(now):
        logger.warning("Refresh attempted with expired token %s", _mask(presented))
        raise RefreshTokenExpired()

    # Reaching here means the row exists, is unexpired, and the CAS still
    # failed: it was already revoked (rotated, logged out, or lost a race).
    logger.error(
        "Revoked refresh token %s presented again for user_id=%s from ip=%s",
        _mask(presented), record.user_id, ip_address,
    )
    security_alerts.notify_possible_account_compromise(
        record.user_id,
        ip_address,
        user_agent,
        security_alerts.INCIDENT_REFRESH_TOKEN_REUSE,
    )
    if current_app.config.get("REFRESH_TOKEN_REVOKE_ALL_ON_REUSE", False):
        revoked = token_store.revoke_all(record.user_id, session)
        logger.warning(
            "Revoked %d refresh tokens for user_id=%s after token reuse",
            revoked, record.user_id,
        )
    raise RefreshTokenRevoked()


def rotate_refresh_token(
        presented: str,
        session: Session,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        now: datetime | None = None,
) -> dict:
    """
    Exchanges a valid refresh token for a new access + refresh pair.

    The presented token is revoked in the same transaction the new one is
    inserted in. Metadata is carried forward from the old token unless the
    caller supplies fresher values.

    Raises:
      RefreshTokenNotFound — unknown token string
      RefreshTokenExpired  — past its expiry (whatever its revoked flag)
      RefreshTokenRevoked  — already rotated / logged out (replay)
    """
    now = now or utcnow()

    if not token_store.revoke_if_active(presented, now, session):
        _raise_for_unusable(presented, now, session, ip_address, user_agent)

    record = token_store.find_by_token(presented, session)
    user = record.user

    if not is_same_origin(record.ip_address, record.user_agent, ip_address, user_agent):
        security_alerts.notify_new_device_login(user.id, ip_address, user_agent)

    pair = issue_token_pair(
        user,
        session,
        ip_address=ip_address or record.ip_address,
        user_agent=user_agent or record.user_agent,
        device_info=extract_device_info(user_agent) if user_agent else record.device_info,
        now=now,
    )
    logger.info(
        "Refresh token %s rotated for user_id=%s", _mask(presented), user.id,
    )
    return pair


# ── Revocation ─────────────────────────────────────────────────────────────

def revoke_refresh_token(presented: str, session: Session) -> None:
    """
    Logout: permanently revokes one refresh token.

    Raises:
      RefreshTokenNotFound — unknown token string
      RefreshTokenRevoked  — already revoked
    """
    if token_store.revoke(presented, session):
        logger.info("Refresh token %s revoked by logout", _mask(presented))
        return

    if token_store.find_by_token(presented, session) is None:
        raise RefreshTokenNotFound()
    raise RefreshTokenRevoked("The refresh token has already been revoked.")


def revoke_all_for_user(user_id: int, session: Session) -> int:
    """Revokes every active refresh token of a user. Returns how many were revoked."""
    count = token_store.revoke_all(user_id, session)
    logger.warning("All %d refresh tokens revoked for user_id=%s", count, user_id)
    return count


def list_sessions(user_id: int, session: Session, now: datetime | None = None) -> dict:
    """Active refresh tokens of a user, presented as login sessions."""
    now = now or utcnow()
    records = token_store.list_active(user_id, now, session)
    return {
        "count": token_store.count_active(user_id, now, session),
        "sessions": [
            {
                "id": r.id,
                "created_at": as_utc(r.created_at).isoformat(),
                "expires_at": as_utc(r.expires_at).isoformat(),
                "ip_address": r.ip_address,
                "device_info": r.device_info,
            }
            for r in records
        ],
    }
