"""
throttle.py — request rate limits.

Two tiers, both read from app config on every request:

  default    THROTTLE_LIMIT requests per THROTTLE_TTL seconds, per client IP,
             per route. Applied to every route that does not set its own.
  auth       AUTH_THROTTLE_LIMIT requests per AUTH_THROTTLE_TTL seconds,
             keyed on client IP + the email in the request body. Applied to
             POST /auth/login and POST /auth/register.

The limiter itself lives in extensions.py; a breach raises
RateLimitExceeded, which the app factory turns into RATE_LIMITED (429).
"""

from __future__ import annotations

from flask import current_app, request
from flask_limiter.util import get_remote_address


def _per_seconds(count: int, window_seconds: int) -> str:
    return f"{count} per {window_seconds} seconds"


def default_limit() -> str:
    config = current_app.config
    return _per_seconds(config["THROTTLE_LIMIT"], config["THROTTLE_TTL"])


def auth_limit() -> str:
    config = current_app.config
    return _per_seconds(config["AUTH_THROTTLE_LIMIT"], config["AUTH_THROTTLE_TTL"])


def ip_and_email_key() -> str:
    """Bucket key for credential endpoints: "auth:<ip>:<lowercased email>"."""
    body = request.get_json(force=True, silent=True)
    email = body.get("email") if isinstance(body, dict) else None
    if not isinstance(email, str) or not email:
        email = "no-email"
    return f"auth:{get_remote_address()}:{email.strip().lower()}"
