"""
schemas/auth_schema.py — Marshmallow schemas for authentication endpoints.

Validation responsibility:
  - This file: field types, lengths, formats, password policy.
  - services/auth_service.py: DUPLICATE_EMAIL and everything else that
    needs a database lookup.

IMPORTANT: All schemas inherit from marshmallow.Schema directly.
           Do NOT use ma.Schema — it requires an active Flask app context
           and breaks unit tests. See extensions.py.
"""

from __future__ import annotations

import re

from marshmallow import Schema, ValidationError, fields, validate, validates

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*()_+\-=\[\]{}|;:,.<>?]")


class RegisterSchema(Schema):
    """
    POST /auth/register

    Field rules:
      email    : valid email format, at most 255 chars
      password : at least 8 chars with at least one lowercase letter, one
                 uppercase letter, one digit and one special character

    Uniqueness is enforced in auth_service.py / the database, not here.
    """

    email = fields.Email(
        required=True,
        validate=validate.Length(max=255),
    )

    password = fields.Str(required=True, load_only=True)

    @validates("password")
    def validate_password_strength(self, value: str, **kwargs) -> None:
        if len(value) < 8:
            raise ValidationError("Password must be at least 8 characters long.")
        if not any(c.islower() for c in value):
            raise ValidationError("Password must contain at least one lowercase letter.")
        if not any(c.isupper() for c in value):
            raise ValidationError("Password must contain at least one uppercase letter.")
        if not any(c.isdigit() for c in value):
            raise ValidationError("Password must contain at least one digit.")
        if not _SPECIAL_CHARS.search(value):
            raise ValidationError("Password must contain at least one special character.")


class LoginSchema(Schema):
    """
    POST /auth/login

    Credential correctness is checked in auth_service.py
    (INVALID_CREDENTIALS, 401).
    """

    email = fields.Email(required=True)
    password = fields.Str(
        required=True,
        load_only=True,
        validate=validate.Length(min=1, error="Password must not be empty."),
    )


class RefreshTokenSchema(Schema):
    """
    POST /auth/refresh

    Token validity (expired, revoked, never issued) is checked in
    auth_service.py (REFRESH_TOKEN_INVALID, 401).
    """

    refresh_token = fields.Str(
        required=True,
        validate=validate.Length(min=1, error="Refresh token must not be empty."),
    )


class LogoutSchema(Schema):
    """
    POST /auth/logout

    The token is optional: logging out without one is a no-op success.
    """

    refresh_token = fields.Str(load_default=None, allow_none=True)


class VerifyEmailSchema(Schema):
    """POST /auth/verify-email"""

    token = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=64),
    )
