"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - `flask db` / Alembic to work without starting the full server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Refuse to start without a JWT signing key (ConfigurationError)
  3. Initialise SQLAlchemy with bounded engine timeouts
  4. Register the auth blueprint under /api/v1/auth
  5. Register global error handlers (AppError → JSON, Exception → 500)
  6. Start the refresh-token cleanup scheduler (unless disabled)
  7. Register operator CLI commands
"""

from __future__ import annotations

import atexit
import logging
import os
import traceback

from flask import Flask, jsonify, request
from marshmallow import ValidationError

from backend.config import (
    config_by_name,
    engine_options_for,
    validate_jwt_config,
    validate_production_config,
)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str | None = None, *, start_scheduler: bool = True) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name:     One of "development", "testing", "production".
                         Defaults to $FLASK_ENV, then "development".
        start_scheduler: Set False for one-off processes (CLI, migrations)
                         that must not run the cleanup job.

    Raises:
        ConfigurationError: signing key missing, or production misconfigured.
    """
    config_name = config_name or os.getenv("FLASK_ENV", "development")

    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)
    app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", engine_options_for(app.config))

    _configure_logging(app)

    validate_jwt_config(app)
    if config_name == "production":
        validate_production_config(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from backend.app.extensions import db
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from backend.app import models  # noqa: F401

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    from backend.app.cli import register_cli
    register_cli(app)

    @app.get("/healthz")
    def healthz():
        return jsonify({"status": "ok"})

    if start_scheduler:
        from backend.app.services.cleanup_service import (
            start_cleanup_scheduler,
            stop_cleanup_scheduler,
        )
        if start_cleanup_scheduler(app) is not None:
            atexit.register(stop_cleanup_scheduler, app)

    return app


def _configure_logging(app: Flask) -> None:
    """Root logging at LOG_LEVEL unless the host process already configured it."""
    level = str(app.config.get("LOG_LEVEL", "INFO")).upper()
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    logging.getLogger("backend").setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """Registers all route blueprints under the /api/v1 prefix."""
    from backend.app.routes.auth import auth_bp

    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP status
      ValidationError → marshmallow schema errors as MISSING_FIELD /
                        INVALID_FIELD responses (400)
      Exception       → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces never leave the server.
    """
    from werkzeug.exceptions import HTTPException

    from backend.app.errors import AppError, ErrorCode

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """Routes never catch AppError — they let it propagate here."""
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.
        Only the FIRST field error is reported.
        """
        messages = error.messages

        field = None
        raw_message = "Invalid input."
        code = ErrorCode.INVALID_FIELD

        if isinstance(messages, dict):
            for field_name, field_errors in messages.items():
                field = field_name if field_name != "_schema" else None
                if isinstance(field_errors, list):
                    raw_message = field_errors[0] if field_errors else "Invalid value."
                else:
                    raw_message = str(field_errors)
                break
        elif isinstance(messages, list) and messages:
            raw_message = str(messages[0])

        if str(raw_message).startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD

        response_body = {
            "error": {
                "code": code,
                "message": raw_message,
            }
        }
        if field is not None:
            response_body["error"]["field"] = field

        return jsonify(response_body), 400

    @app.errorhandler(HTTPException)
    def handle_http_exception(error: HTTPException):
        """404/405 and malformed JSON bodies keep their status, in our envelope."""
        return jsonify({
            "error": {
                "code": ErrorCode.INVALID_FIELD if error.code == 400 else error.name.upper().replace(" ", "_"),
                "message": error.description,
            }
        }), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers for browser-based local development.

    Enabled when DEBUG or TESTING is true so a frontend served from another
    local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, PATCH, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response
