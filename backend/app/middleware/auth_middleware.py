"""
middleware/auth_middleware.py — JWT authentication and role decorators.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Decodes and verifies the JWT signature, expiry and issuer
  3. Attaches user_id (int) and roles (list[str]) to flask.g
  4. Raises the appropriate 401 AppError if any step fails

@require_roles(*names) runs the same sequence and then answers 403 FORBIDDEN
unless the token carries at least one of `names`.

Services receive user_id as a plain integer argument, with no knowledge of
JWT or HTTP headers.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, invalid signature, or bad payload
  TOKEN_EXPIRED  (401) — valid token but exp claim is in the past
  FORBIDDEN      (403) — authenticated, but lacking the required role
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from backend.app.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces JWT authentication.

    Usage:
        @auth_bp.route("/me")
        @require_auth
        def me():
            user_id = g.user_id  # always an int when this runs
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def require_roles(*role_names: str) -> Callable:
    """Route decorator: authenticated AND holding at least one of `role_names`."""
    allowed = set(role_names)

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            _authenticate_request()
            if not allowed.intersection(g.roles):
                raise AppError(
                    ErrorCode.FORBIDDEN,
                    "You do not have the role required for this action.",
                    403,
                )
            return f(*args, **kwargs)

        return decorated

    return decorator


def _authenticate_request() -> None:
    """
    Performs the full JWT authentication sequence and sets flask.g.user_id
    and flask.g.roles.

    Raises AppError on any authentication failure.
    """
    auth_header = request.headers.get("Authorization", "")

    # ── Step 1: Require Authorization header ──────────────────────────────
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    # ── Step 2: Parse "Bearer <token>" format ─────────────────────────────
    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )

    raw_token = parts[1]

    # ── Step 3: Decode and verify the JWT ─────────────────────────────────
    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
            issuer=current_app.config.get("JWT_ISSUER", "store-api"),
            options={"require": ["exp", "iat", "sub", "iss"]},
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired. Use POST /auth/refresh to obtain a new one.",
            401,
        )
    except jwt.InvalidTokenError:
        # Covers: bad signature, malformed token, wrong issuer, missing claims.
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            401,
        )

    # ── Step 4: Extract the sub (user_id) and roles claims ────────────────
    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'sub' claim in the access token is not a valid user ID.",
            401,
        )

    roles = payload.get("roles") or []
    if not isinstance(roles, list):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The 'roles' claim in the access token must be a list.",
            401,
        )

    g.user_id = user_id
    g.roles = roles
