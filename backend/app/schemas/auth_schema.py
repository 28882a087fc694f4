"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, regex patterns.
  - services/: DUPLICATE_EMAIL / DUPLICATE_USERNAME checks and every
    refresh-token state check (cross-entity: they require a DB lookup).

IMPORTANT: All schemas inherit from marshmallow.Schema directly and never
           touch the Flask app, so unit tests load them without a context.
"""

from __future__ import annotations

from marshmallow import Schema, ValidationError, fields, validates, validate


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      username : 3–50 chars, alphanumeric + underscore only
      email    : valid email format
      password : min 8 chars, at least one letter and one digit
    """

    username = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=3,
                max=50,
                error="Username must be between 3 and 50 characters.",
            ),
            validate.Regexp(
                r"^[a-zA-Z0-9_]+$",
                error="Username may only contain letters, numbers, and underscores.",
            ),
        ],
    )

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.isalpha() for c in value):
            raise ValidationError("Password must contain at least one letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py (INVALID_CREDENTIALS, 401).
    """

    username = fields.Str(required=True)
    password = fields.Str(required=True, load_only=True)


class RefreshTokenSchema(Schema):
    """
    POST /auth/refresh and POST /auth/logout

    Refresh tokens are UUID strings. A value that is not even a UUID is a
    400, not a 401. Whether it is known, expired or revoked is decided by
    token_service.
    """

    refresh_token = fields.UUID(required=True)

