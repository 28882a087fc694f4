"""
services/auth_service.py — Account and credential business logic.

Responsibilities:
  - User registration and credential validation
  - Password hashing (bcrypt) and verification
  - Default role assignment
  - Handing authenticated users to token_service for a token pair

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes beyond AppError
  - current_app.config is read only for BCRYPT_LOG_ROUNDS

Password storage:
  - Hashed with bcrypt (cost factor from config BCRYPT_LOG_ROUNDS, default 12)
  - Raw password is never stored, never logged
"""

from __future__ import annotations

import logging

import bcrypt
from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import Session

from backend.app.errors import AppError, ErrorCode
from backend.app.models.role import DEFAULT_ROLE, Role
from backend.app.models.user import User
from backend.app.services import token_service

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _build_user_dict(user: User) -> dict:
    """Serialises a User to a plain dict. No business logic."""
    return {
        "id": user.id,
        "username": user.username,
        "email": user.email,
        "roles": user.role_names,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


def get_or_create_role(name: str, session: Session) -> Role:
    """Returns the Role called `name`, inserting it on first use."""
    role = session.execute(
        select(Role).where(Role.name == name)
    ).scalar_one_or_none()
    if role is None:
        role = Role(name=name)
        session.add(role)
        session.flush()
    return role


# ── Public service functions ───────────────────────────────────────────────

def register_user(
        username: str,
        email: str,
        password: str,
        session: Session,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
) -> dict:
    """
    Creates a new user account with the default role and issues a token pair.

    Raises:
      AppError(DUPLICATE_EMAIL, 409)    — email already registered
      AppError(DUPLICATE_USERNAME, 409) — username already taken

    Returns: {"user": {...}, "access_token", "refresh_token", "token_type", "expires_in"}
    """
    existing_email = session.execute(
        select(User).where(User.email == email)
    ).scalar_one_or_none()
    if existing_email is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    existing_username = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()
    if existing_username is not None:
        raise AppError(
            ErrorCode.DUPLICATE_USERNAME,
            f"The username '{username}' is already taken.",
            409,
            field="username",
        )

    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    password_hash = bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")

    user = User(
        username=username,
        email=email,
        password_hash=password_hash,
    )
    user.roles.append(get_or_create_role(DEFAULT_ROLE, session))
    session.add(user)
    session.flush()  # populate user.id / created_at before issuing tokens
    session.refresh(user)

    tokens = token_service.issue_token_pair(
        user, session, ip_address=ip_address, user_agent=user_agent,
    )
    logger.info("Registered user_id=%s", user.id)

    return {
        "user": _build_user_dict(user),
        **tokens,
    }


def login_user(
        username: str,
        password: str,
        session: Session,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
) -> dict:
    """
    Validates credentials and issues a new access + refresh token pair.
    Every login adds a session; existing refresh tokens stay valid.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — username not found or password wrong.
      Uses the same error for both to avoid username enumeration.
    """
    user = session.execute(
        select(User).where(User.username == username)
    ).scalar_one_or_none()

    if user is None or not bcrypt.checkpw(
            password.encode("utf-8"),
            user.password_hash.encode("utf-8"),
    ):
        logger.info("Failed login for username=%r from ip=%s", username, ip_address)
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The username or password is incorrect.",
            401,
        )

    tokens = token_service.issue_token_pair(
        user, session, ip_address=ip_address, user_agent=user_agent,
    )

    return {
        "user": _build_user_dict(user),
        **tokens,
    }


def get_current_user(user_id: int, session: Session) -> dict:
    """
    Returns the profile of the currently authenticated user.

    Raises:
      AppError(USER_NOT_FOUND, 404) — user_id from JWT no longer exists in DB.
    """
    user = session.get(User, user_id)
    if user is None:
        raise AppError(
            ErrorCode.USER_NOT_FOUND,
            f"User {user_id} not found.",
            404,
        )
    return _build_user_dict(user)
