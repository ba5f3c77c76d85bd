"""
middleware/auth_middleware.py — bearer access-token decorator.

The @require_auth decorator:
  1. Reads the Authorization header (expected: "Bearer <token>")
  2. Hands the token to AuthService.validate_access_token (signature,
     expiry, account still exists)
  3. Attaches the AccountView to flask.g.account and its id to
     flask.g.account_id for the duration of the request
  4. Raises the appropriate 401 AppError if any step fails

Error codes:
  TOKEN_MISSING         (401) — no Authorization header
  TOKEN_INVALID         (401) — header not in "Bearer <token>" form
  ACCESS_TOKEN_INVALID  (401) — expired, tampered, or account gone
"""

from __future__ import annotations

import functools
from typing import Callable

from flask import g, request

from backend.accounts.errors import AppError, ErrorCode


def require_auth(f: Callable) -> Callable:
    """
    Route decorator that enforces access-token authentication.

    Raises AppError for all auth failures — the global error handler converts
    these to the correct JSON response. Routes never catch AppError.

    Usage:
        @auth_bp.route("/me")
        @require_auth
        def me():
            account_id = g.account_id
            ...
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def extract_bearer_token(auth_header: str) -> str:
    """
    Returns the token part of "Bearer <token>".

    Raises:
      AppError(TOKEN_MISSING, 401) — empty header
      AppError(TOKEN_INVALID, 401) — anything but "Bearer <token>"
    """
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            401,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            401,
        )
    return parts[1]


def _authenticate_request() -> None:
    """
    Performs the full authentication sequence and sets flask.g.account.

    Separated from the decorator wrapper so it can be called directly in
    tests without wrapping a real view function.
    """
    # Imported here so the middleware module does not pull in the models at
    # import time.
    from backend.accounts.routes.auth import get_auth_service

    raw_token = extract_bearer_token(request.headers.get("Authorization", ""))

    account = get_auth_service().validate_access_token(raw_token)

    g.account = account
    g.account_id = account.id
