"""
errors.py — AppError base class and error code registry.

Every error returned by the API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.
  - Never conflate 401 (unauthenticated) with 403 (unauthorized).
"""

from __future__ import annotations


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ConfigurationError(RuntimeError):
    """
    Raised when the process is misconfigured (e.g. no JWT signing key).

    Deliberately NOT an AppError: it is never turned into an HTTP response.
    create_app() raises it at startup so the service does not boot at all.
    """


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"
    DUPLICATE_USERNAME         = "DUPLICATE_USERNAME"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"      # 401
    TOKEN_MISSING              = "TOKEN_MISSING"            # 401
    TOKEN_INVALID              = "TOKEN_INVALID"            # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"            # 401
    REFRESH_TOKEN_NOT_FOUND    = "REFRESH_TOKEN_NOT_FOUND"  # 401
    REFRESH_TOKEN_EXPIRED      = "REFRESH_TOKEN_EXPIRED"    # 401
    REFRESH_TOKEN_REVOKED      = "REFRESH_TOKEN_REVOKED"    # 401
    FORBIDDEN                  = "FORBIDDEN"                # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Refresh-token outcomes ─────────────────────────────────────────────────
#
# The boundary layer answers all three with 401. They are distinct classes so
# the rotation handler and its tests can tell them apart.
# ──────────────────────────────────────────────────────────────────────────

class RefreshTokenError(AppError):
    """Common base for every refresh-token authentication failure (401)."""

    code = ErrorCode.INTERNAL_ERROR
    default_message = "The refresh token is not valid."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            type(self).code,
            message or type(self).default_message,
            401,
        )


class RefreshTokenNotFound(RefreshTokenError):
    code = ErrorCode.REFRESH_TOKEN_NOT_FOUND
    default_message = "The refresh token is unknown."


class RefreshTokenExpired(RefreshTokenError):
    code = ErrorCode.REFRESH_TOKEN_EXPIRED
    default_message = "The refresh token has expired. Please log in again."


class RefreshTokenRevoked(RefreshTokenError):
    code = ErrorCode.REFRESH_TOKEN_REVOKED
    default_message = "The refresh token has been revoked."
