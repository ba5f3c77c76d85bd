"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service method
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries.
AppError propagates to the global error handler in accounts/__init__.py —
routes never catch it.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/register      → 201  (throttled per IP + email)
  POST   /auth/login         → 200  (throttled per IP + email)
  POST   /auth/refresh       → 200
  POST   /auth/logout        → 200
  POST   /auth/logout-all    → 200  (Bearer auth)
  POST   /auth/verify-email  → 200
  GET    /auth/me            → 200  (Bearer auth)
  GET    /auth/health        → 200  (never throttled)
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from backend.accounts.errors import AppError
from backend.accounts.extensions import db, limiter
from backend.accounts.middleware.auth_middleware import require_auth
from backend.accounts.schemas.auth_schema import (
    LoginSchema,
    LogoutSchema,
    RefreshTokenSchema,
    RegisterSchema,
    VerifyEmailSchema,
)
from backend.accounts.services.auth_service import AuthService, build_auth_service
from backend.accounts.throttle import auth_limit, ip_and_email_key

auth_bp = Blueprint("auth", __name__)


def get_auth_service() -> AuthService:
    """AuthService bound to the request's DB session and the app's clock."""
    return build_auth_service(
        db.session,
        current_app.config,
        clock=current_app.extensions["accounts_clock"],
    )


@auth_bp.route("/register", methods=["POST"])
@limiter.limit(auth_limit, key_func=ip_and_email_key)
def register():
    """POST /auth/register — Create an unverified account. (No auth required.)"""
    data = RegisterSchema().load(request.get_json(force=True, silent=True) or {})
    account = get_auth_service().register(
        email=data["email"],
        password=data["password"],
    )
    db.session.commit()
    return jsonify({"data": {"account": account.to_dict()}, "warnings": []}), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit(auth_limit, key_func=ip_and_email_key)
def login():
    """POST /auth/login — Authenticate; return account + tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True, silent=True) or {})
    try:
        result = get_auth_service().login(
            email=data["email"],
            password=data["password"],
        )
    except AppError:
        # Failed attempts and lockouts must persist even though the call
        # ends in an error.
        db.session.commit()
        raise
    db.session.commit()
    return jsonify({"data": result.to_dict(), "warnings": []}), 200


@auth_bp.route("/refresh", methods=["POST"])
def refresh():
    """POST /auth/refresh — Exchange refresh token for new access token."""
    data = RefreshTokenSchema().load(request.get_json(force=True, silent=True) or {})
    result = get_auth_service().refresh(data["refresh_token"])
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Revoke one refresh token. Idempotent."""
    data = LogoutSchema().load(request.get_json(force=True, silent=True) or {})
    get_auth_service().logout(data.get("refresh_token"))
    db.session.commit()
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/logout-all", methods=["POST"])
@require_auth
def logout_all():
    """POST /auth/logout-all — Revoke every refresh token of the caller. (Auth required.)"""
    revoked = get_auth_service().logout_all_devices(g.account_id)
    db.session.commit()
    return jsonify({
        "data": {"message": "Logged out on all devices.", "revoked": revoked},
        "warnings": [],
    }), 200


@auth_bp.route("/verify-email", methods=["POST"])
def verify_email():
    """POST /auth/verify-email — Consume a verification token."""
    data = VerifyEmailSchema().load(request.get_json(force=True, silent=True) or {})
    account = get_auth_service().verify_email(data["token"])
    db.session.commit()
    return jsonify({"data": {"account": account.to_dict()}, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
@require_auth
def me():
    """GET /auth/me — Return the caller's account. (Auth required.)"""
    return jsonify({"data": {"account": g.account.to_dict()}, "warnings": []}), 200


@auth_bp.route("/health", methods=["GET"])
@limiter.exempt
def health():
    """GET /auth/health — Liveness check for the auth module."""
    return jsonify({"data": {"status": "ok"}, "warnings": []}), 200
