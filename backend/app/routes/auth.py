"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries.
AppError propagates to the global error handler in app/__init__.py.

Endpoints (url_prefix=/api/v1/auth):
  POST   /register                   → 201
  POST   /login                      → 200
  POST   /refresh                    → 200   (rotates the refresh token)
  POST   /logout                     → 200
  POST   /logout-all                 → 200   (auth)
  GET    /sessions                   → 200   (auth)
  GET    /me                         → 200   (auth)
  POST   /users/<id>/revoke-tokens   → 200   (ROLE_ADMIN)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from backend.app.errors import RefreshTokenRevoked
from backend.app.extensions import db
from backend.app.middleware.auth_middleware import require_auth, require_roles
from backend.app.models.role import ROLE_ADMIN
from backend.app.schemas.auth_schema import LoginSchema, RefreshTokenSchema, RegisterSchema
from backend.app.services import auth_service, token_service

auth_bp = Blueprint("auth", __name__)


def _client_ip() -> str | None:
    """First hop of X-Forwarded-For when behind a proxy, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or request.remote_addr
    return request.remote_addr


def _user_agent() -> str | None:
    return request.headers.get("User-Agent") or None


@auth_bp.route("/register", methods=["POST"])
def register():
    """POST /auth/register — Create account; return tokens. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(force=True) or {})
    result = auth_service.register_user(
        username=data["username"],
        email=data["email"],
        password=data["password"],
        session=db.session,
        ip_address=_client_ip(),
        user_agent=_user_agent(),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True) or {})
    result = auth_service.login_user(
        username=data["username"],
        password=data["password"],
        session=db.session,
        ip_address=_client_ip(),
        user_agent=_user_agent(),
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Exchange a refresh token for a new token pair."""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    try:
        result = token_service.rotate_refresh_token(
            str(data["refresh_token"]),
            db.session,
            ip_address=_client_ip(),
            user_agent=_user_agent(),
        )
    except RefreshTokenRevoked:
        # A replay may have revoked the owner's other tokens; keep that.
        db.session.commit()
        raise
    except Exception:
        # Revoke and replace land together or not at all.
        db.session.rollback()
        raise
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Revoke a refresh token. The token is the credential."""
    data = RefreshTokenSchema().load(request.get_json(force=True) or {})
    token_service.revoke_refresh_token(str(data["refresh_token"]), db.session)
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/logout-all", methods=["POST"])
@require_auth
def logout_all():
    """POST /auth/logout-all — Revoke every refresh token of the caller."""
    revoked = token_service.revoke_all_for_user(g.user_id, db.session)
    db.session.commit()
    return jsonify({"data": {"revoked": revoked}, "warnings": []}), 200


@auth_bp.route("/sessions", methods=["GET"])
@require_auth
def sessions():
    """GET /auth/sessions — Active refresh tokens of the caller."""
    result = token_service.list_sessions(g.user_id, db.session)
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        user_id=g.user_id,
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/users/<int:user_id>/revoke-tokens", methods=["POST"])
@require_roles(ROLE_ADMIN)
def revoke_user_tokens(user_id: int):
    """POST /auth/users/<id>/revoke-tokens — Account-compromise response. (Admin.)"""
    revoked = token_service.revoke_all_for_user(user_id, db.session)
    db.session.commit()
    return jsonify({"data": {"user_id": user_id, "revoked": revoked}, "warnings": []}), 200
