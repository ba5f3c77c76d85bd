"""
errors.py — AppError base class, error code registry and the domain errors.

Every error raised by the account core carries a code defined here.
Do not raise strings or generic exceptions from store, service or route code.

The error set is closed: each subclass below binds exactly one ErrorCode and
one HTTP status. Callers match on the class (or on `.code`), never on the
message text.

Never conflate 401 (unauthenticated) with 403 (known account, not allowed).
"""

from __future__ import annotations

import math
from datetime import timedelta


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
            f"AppError(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# These are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    VERIFICATION_TOKEN_INVALID = "VERIFICATION_TOKEN_INVALID"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    DUPLICATE_EMAIL            = "DUPLICATE_EMAIL"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    ACCOUNT_NOT_FOUND          = "ACCOUNT_NOT_FOUND"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you may not log in right now
    INVALID_CREDENTIALS        = "INVALID_CREDENTIALS"    # 401
    ACCOUNT_LOCKED             = "ACCOUNT_LOCKED"         # 403
    EMAIL_NOT_VERIFIED         = "EMAIL_NOT_VERIFIED"     # 403
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    ACCESS_TOKEN_INVALID       = "ACCESS_TOKEN_INVALID"   # 401
    REFRESH_TOKEN_INVALID      = "REFRESH_TOKEN_INVALID"  # 401

    # ── Throttling (429) ───────────────────────────────────────────────────
    RATE_LIMITED               = "RATE_LIMITED"

    # ── System Errors (500) ────────────────────────────────────────────────
    HASHING_FAILED             = "HASHING_FAILED"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Component errors ───────────────────────────────────────────────────────
# Raised by the hasher and the token issuer. The orchestrator translates the
# token errors into InvalidRefreshTokenError / InvalidAccessTokenError;
# HashingError propagates unchanged.

class HashingError(AppError):

    def __init__(self, message: str = "Password hashing failed.") -> None:
        super().__init__(ErrorCode.HASHING_FAILED, message, 500)


class TokenExpiredError(AppError):

    def __init__(self, message: str = "The token has expired.") -> None:
        super().__init__(ErrorCode.TOKEN_EXPIRED, message, 401)


class TokenInvalidError(AppError):

    def __init__(
            self,
            message: str = "The token is invalid or has been tampered with.",
    ) -> None:
        super().__init__(ErrorCode.TOKEN_INVALID, message, 401)


# ── Domain errors ──────────────────────────────────────────────────────────

class DuplicateEmailError(AppError):

    def __init__(self, email: str) -> None:
        super().__init__(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )


class InvalidCredentialsError(AppError):
    """Same error for unknown email and wrong password."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )


class AccountLockedError(AppError):
    """
    Login refused while `locked_until` is in the future.

    Carries the remaining lockout time only; the failure counter is never
    exposed.
    """

    def __init__(self, retry_after: timedelta) -> None:
        self.retry_after = retry_after
        self.retry_after_seconds = max(0, math.ceil(retry_after.total_seconds()))
        minutes = max(1, math.ceil(self.retry_after_seconds / 60))
        super().__init__(
            ErrorCode.ACCOUNT_LOCKED,
            f"The account is locked. Try again in {minutes} minute(s).",
            403,
        )

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["error"]["retry_after_seconds"] = self.retry_after_seconds
        return payload


class EmailNotVerifiedError(AppError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.EMAIL_NOT_VERIFIED,
            "Please verify your email address before logging in.",
            403,
        )


class InvalidRefreshTokenError(AppError):

    def __init__(
            self,
            message: str = "The refresh token is invalid or has expired. Please log in again.",
    ) -> None:
        super().__init__(ErrorCode.REFRESH_TOKEN_INVALID, message, 401)


class InvalidAccessTokenError(AppError):

    def __init__(
            self,
            message: str = "The access token is invalid or has been tampered with.",
    ) -> None:
        super().__init__(ErrorCode.ACCESS_TOKEN_INVALID, message, 401)


class AccountNotFoundError(AppError):

    def __init__(self, account_id: str) -> None:
        super().__init__(
            ErrorCode.ACCOUNT_NOT_FOUND,
            f"Account {account_id} not found.",
            404,
        )


class InvalidVerificationTokenError(AppError):

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.VERIFICATION_TOKEN_INVALID,
            "The verification link is invalid or has expired.",
            400,
            field="token",
        )


# ── Transport errors ───────────────────────────────────────────────────────

class RateLimitedError(AppError):
    """A throttle bucket for this client is full. Raised by the app factory."""

    def __init__(self) -> None:
        super().__init__(
            ErrorCode.RATE_LIMITED,
            "Too many requests. Please wait and try again later.",
            429,
        )
