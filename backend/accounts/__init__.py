"""
accounts/__init__.py — Flask application factory for the account service.

create_app(config_name, clock) builds a fresh app on every call; nothing
touches the database at import time, so tests can build isolated apps and
Alembic can import the models without starting a server.

Steps, in order:
  1. Load the config class named by config_name (production is guarded)
  2. Bind SQLAlchemy, Marshmallow and the rate limiter to the app
  3. Attach the clock used for token, lockout and verification expiry
  4. Mount the auth blueprint at /api/v1/auth
  5. Install the JSON error handlers and the `flask accounts` CLI group
"""

from __future__ import annotations

import logging
import traceback

from flask import Flask, jsonify, request
from flask_limiter import RateLimitExceeded
from marshmallow import ValidationError
from sqlalchemy import event
from sqlalchemy.engine import Engine

from backend.accounts.clock import SystemClock
from backend.config import config_by_name, validate_production_config


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development", clock=None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to "development".
        clock:       Time source for token and lockout expiry. Defaults to
                     the system clock; tests pass a FixedClock.

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    from backend.accounts.extensions import db, limiter, ma
    db.init_app(app)
    ma.init_app(app)
    limiter.init_app(app)

    app.extensions["accounts_clock"] = clock or SystemClock()

    # ── Model registration ─────────────────────────────────────────────────
    # Import all models so that SQLAlchemy's MetaData is populated.
    with app.app_context():
        from backend.accounts.models import account, refresh_token  # noqa: F401

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_commands(app)

    return app


def _configure_logging(app: Flask) -> None:
    """Sets the level of the accounts package loggers from DEBUG."""
    level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    logging.getLogger("backend.accounts").setLevel(level)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """
    SQLite ignores ON DELETE CASCADE unless foreign keys are switched on per
    connection. No-op for every other driver.
    """
    module = type(dbapi_connection).__module__
    if module.startswith("sqlite3") or module.startswith("pysqlite"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _register_blueprints(app: Flask) -> None:
    """Registers the auth blueprint under the /api/v1/auth prefix."""
    from backend.accounts.routes.auth import auth_bp

    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")


def _register_commands(app: Flask) -> None:
    from backend.accounts.commands import accounts_cli

    app.cli.add_command(accounts_cli)


def _first_validation_error(messages) -> tuple[str | None, str]:
    """
    Picks (field, message) out of marshmallow's error structure, e.g.
    {"email": ["Not a valid email address."]}. Schema-level errors have no field.
    """
    if isinstance(messages, dict) and messages:
        field, errors = next(iter(messages.items()))
        if isinstance(errors, list):
            message = str(errors[0]) if errors else "Invalid value."
        else:
            message = str(errors)
        return (None if field == "_schema" else field), message
    if isinstance(messages, list) and messages:
        return None, str(messages[0])
    return None, "Invalid input."


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError          → structured JSON error envelope with the correct HTTP status
      RateLimitExceeded → RATE_LIMITED (429), logged as a warning
      ValidationError   → marshmallow schema errors formatted as MISSING_FIELD /
                          INVALID_FIELD responses (400)
      Exception         → generic INTERNAL_ERROR (500); full traceback logged

    Stack traces and storage error details never leave the server.
    """
    from backend.accounts.errors import AppError, ErrorCode, RateLimitedError

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.
        """
        if error.http_status >= 500:
            app.logger.error("%r on %s %s", error, request.method, request.path)
            from backend.accounts.extensions import db
            db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(RateLimitExceeded)
    def handle_rate_limited(error: RateLimitExceeded):
        """Throttled requests get the standard envelope instead of HTML."""
        app.logger.warning(
            "Rate limit %s exceeded on %s %s",
            error.description, request.method, request.path,
        )
        return jsonify(RateLimitedError().to_dict()), 429

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        Only the FIRST field error is reported.
        """
        field, message = _first_validation_error(error.messages)
        code = (
            ErrorCode.MISSING_FIELD
            if message.startswith("Missing data for required field")
            else ErrorCode.INVALID_FIELD
        )
        body = {"code": code, "message": message}
        if field is not None:
            body["field"] = field
        return jsonify({"error": body}), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        The full traceback is logged to the application logger. Stack traces
        never appear in the response body.
        """
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
            return jsonify({
                "error": {
                    "code": error.name.upper().replace(" ", "_"),
                    "message": error.description,
                }
            }), error.code

        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        from backend.accounts.extensions import db
        db.session.rollback()
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500
