"""
services/token_store.py — Persistence contract for refresh tokens.

Every function takes an explicit SQLAlchemy Session and only flushes; the
route (or the cleanup job) owns the commit.

Concurrency model:
  The database is the only shared resource. Every state change that could
  race is a single conditional UPDATE/DELETE whose affected-row count is the
  answer, so two callers can never both "win" the same token. Nothing here
  reads a row and then writes it back.

Layer rules:
  - No Flask imports. Pure Python with a SQLAlchemy session parameter.
  - Returns ORM rows or plain counts, never HTTP concepts.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from backend.app.models.refresh_token import RefreshToken


def find_by_token(token: str, session: Session) -> RefreshToken | None:
    """
    Exact-match lookup. Returns None when the token string is unknown.

    populate_existing forces a fresh read even if this session already holds
    the row, so callers always see the committed `revoked` flag.
    """
    return session.execute(
        select(RefreshToken)
        .where(RefreshToken.token == token)
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()


def save(record: RefreshToken, session: Session) -> RefreshToken:
    """Insert or update a row and flush so its id is populated."""
    session.add(record)
    session.flush()
    return record


def revoke_if_active(token: str, now: datetime, session: Session) -> bool:
    """
    Compare-and-swap used by rotation.

    Flips `revoked` to True only if the token exists, is not yet revoked and
    has not expired. Returns True iff exactly one row changed. A concurrent
    caller racing on the same token sees zero affected rows.
    """
    result = session.execute(
        update(RefreshToken)
        .where(
            RefreshToken.token == token,
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def revoke(token: str, session: Session) -> bool:
    """
    Revokes a single token regardless of expiry (logout).
    Returns False if the token is unknown or was already revoked.
    """
    result = session.execute(
        update(RefreshToken)
        .where(
            RefreshToken.token == token,
            RefreshToken.revoked.is_(False),
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def revoke_all(user_id: int, session: Session) -> int:
    """Revokes every un-revoked token of one owner. Returns the number revoked."""
    result = session.execute(
        update(RefreshToken)
        .where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked.is_(False),
        )
        .values(revoked=True)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def delete_expired_before(now: datetime, session: Session) -> int:
    """
    Deletes every row with expires_at < now, revoked or not.
    Returns the number of rows removed.
    """
    result = session.execute(
        delete(RefreshToken)
        .where(RefreshToken.expires_at < now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def count_active(user_id: int, now: datetime, session: Session) -> int:
    """Number of currently valid tokens held by one owner."""
    return session.execute(
        select(func.count(RefreshToken.id)).where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
    ).scalar_one()


def list_active(user_id: int, now: datetime, session: Session) -> list[RefreshToken]:
    """Currently valid tokens of one owner, newest first."""
    stmt = (
        select(RefreshToken)
        .where(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked.is_(False),
            RefreshToken.expires_at > now,
        )
        .order_by(RefreshToken.created_at.desc(), RefreshToken.id.desc())
    )
    return list(session.execute(stmt).scalars().all())
