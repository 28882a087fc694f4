"""
models/role.py — Role table and the users ↔ roles association table.

Role names follow the ROLE_* convention and are embedded verbatim in the
`roles` claim of every access token.
"""

from __future__ import annotations

from sqlalchemy import Column, ForeignKey, String, Table
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.app.extensions import db


ROLE_USER = "ROLE_USER"
ROLE_EMPLOYEE = "ROLE_EMPLOYEE"
ROLE_MANAGER = "ROLE_MANAGER"
ROLE_ADMIN = "ROLE_ADMIN"

# Privilege level per role; higher outranks lower.
ROLE_LEVELS: dict[str, int] = {
    ROLE_USER: 1,
    ROLE_EMPLOYEE: 2,
    ROLE_MANAGER: 3,
    ROLE_ADMIN: 5,
}

DEFAULT_ROLE = ROLE_USER


user_roles = Table(
    "user_roles",
    db.metadata,
    Column("user_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
)


class Role(db.Model):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(primary_key=True)

    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    users: Mapped[list["User"]] = relationship(  # noqa: F821
        "User",
        secondary=user_roles,
        back_populates="roles",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Role id={self.id} name={self.name!r}>"
