"""
models/refresh_token.py — RefreshToken table definition.

One row per issued refresh credential. Rows are only ever mutated to set
`revoked = True` (rotation, logout, mass revocation) and are deleted in bulk
by the cleanup job once `expires_at` has passed.

FK policy: user_id ON DELETE CASCADE. Tokens go away with their owner.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class RefreshToken(db.Model):
    __tablename__ = "refresh_tokens"

    __table_args__ = (
        # Active-session lookups: WHERE user_id = ? AND revoked = false AND expires_at > ?
        Index("idx_refresh_tokens_active", "user_id", "revoked", "expires_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    # UUID4 string, handed to the client and used as the lookup key.
    token: Mapped[str] = mapped_column(
        String(36),
        nullable=False,
        unique=True,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,  # cleanup sweep
    )

    # One-way flag: False → True, never back.
    revoked: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        onupdate=utcnow,
    )

    # Issuance metadata. Only used for anomaly notifications, never for validity.
    ip_address: Mapped[str | None] = mapped_column(String(45))  # IPv6 max length
    user_agent: Mapped[str | None] = mapped_column(String(255))
    device_info: Mapped[str | None] = mapped_column(String(255))

    # ── Relationships ──────────────────────────────────────────────────────

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="refresh_tokens",
    )

    # ── Pure helpers (no DB access) ────────────────────────────────────────

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or utcnow()
        return now >= as_utc(self.expires_at)

    def is_valid(self, now: datetime | None = None) -> bool:
        return not self.revoked and not self.is_expired(now)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<RefreshToken id={self.id} "
            f"user_id={self.user_id} "
            f"revoked={self.revoked}>"
        )
