"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so it can be imported
anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever needed.

    from backend.app.extensions import db

The cleanup scheduler is NOT a singleton. Each app builds its own in
services/cleanup_service.py and keeps it in app.extensions["token_cleanup"].

Schema rule:
  All validation Schema classes (in app/schemas/) inherit from
  marshmallow.Schema directly so unit tests can load them without a Flask
  application context.
"""

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
