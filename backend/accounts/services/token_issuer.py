"""
services/token_issuer.py — signed, time-bound access and refresh tokens.

Token design:
  - Both classes are JWTs signed with HS256 (config JWT_ALGORITHM).
  - Access tokens:  ACCESS_TOKEN_SECRET,  default TTL 30 min.
  - Refresh tokens: REFRESH_TOKEN_SECRET, default TTL 7 days.
  - Claims: sub (account id), email, iat, exp, jti, type.
    `type` pins the token class so an access token can never be replayed as
    a refresh token (or vice versa) even if the two secrets are configured
    to the same value. `jti` makes two tokens minted in the same second
    distinct.

Expiry is checked against the injected clock, not PyJWT's wall clock, and
`exp <= now` counts as expired.

Verification is pure computation: no I/O, never blocks.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from backend.accounts.clock import SystemClock
from backend.accounts.errors import TokenExpiredError, TokenInvalidError

ACCESS = "access"
REFRESH = "refresh"

_REQUIRED_CLAIMS = ["sub", "email", "iat", "exp", "type"]


@dataclass(frozen=True)
class TokenPayload:
    subject: str
    email: str
    issued_at: datetime
    expires_at: datetime
    token_type: str
    token_id: str | None = None


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str

    def to_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
        }


class TokenIssuer:

    def __init__(
            self,
            access_secret: str,
            refresh_secret: str,
            access_ttl: timedelta = timedelta(minutes=30),
            refresh_ttl: timedelta = timedelta(days=7),
            algorithm: str = "HS256",
            clock=None,
    ) -> None:
        if not access_secret or not refresh_secret:
            raise ValueError("Both token secrets must be non-empty.")
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self.clock = clock or SystemClock()

    @classmethod
    def from_config(cls, config, clock=None) -> "TokenIssuer":
        return cls(
            access_secret=config["ACCESS_TOKEN_SECRET"],
            refresh_secret=config["REFRESH_TOKEN_SECRET"],
            access_ttl=config.get("ACCESS_TOKEN_TTL", timedelta(minutes=30)),
            refresh_ttl=config.get("REFRESH_TOKEN_TTL", timedelta(days=7)),
            algorithm=config.get("JWT_ALGORITHM", "HS256"),
            clock=clock,
        )

    # ── Issuing ────────────────────────────────────────────────────────────

    def issue_access_token(self, account_id: str, email: str) -> str:
        return self._encode(account_id, email, ACCESS, self.access_secret, self.access_ttl)

    def issue_refresh_token(self, account_id: str, email: str) -> str:
        return self._encode(account_id, email, REFRESH, self.refresh_secret, self.refresh_ttl)

    def issue_token_pair(self, account_id: str, email: str) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(account_id, email),
            refresh_token=self.issue_refresh_token(account_id, email),
        )

    def _encode(
            self,
            account_id: str,
            email: str,
            token_type: str,
            secret: str,
            ttl: timedelta,
    ) -> str:
        now = self.clock.now()
        payload = {
            "sub": str(account_id),
            "email": email,
            "iat": now,
            "exp": now + ttl,
            "jti": secrets.token_hex(8),
            "type": token_type,
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)

    # ── Verifying ──────────────────────────────────────────────────────────

    def verify_access_token(self, token: str) -> TokenPayload:
        """
        Raises:
          TokenExpiredError — signature valid, exp has passed
          TokenInvalidError — bad signature, malformed, wrong token class
        """
        return self._decode(token, ACCESS, self.access_secret)

    def verify_refresh_token(self, token: str) -> TokenPayload:
        """Same failure modes as verify_access_token."""
        return self._decode(token, REFRESH, self.refresh_secret)

    def _decode(self, token: str, expected_type: str, secret: str) -> TokenPayload:
        if not token or not isinstance(token, str):
            raise TokenInvalidError("The token is missing or malformed.")

        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={
                    # exp/iat/nbf are checked below against our clock.
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                    "require": _REQUIRED_CLAIMS,
                },
            )
        except jwt.InvalidTokenError as exc:
            # Covers: bad signature, malformed token, missing claims, etc.
            raise TokenInvalidError() from exc

        if claims.get("type") != expected_type:
            raise TokenInvalidError(f"Expected a {expected_type} token.")

        try:
            issued_at = datetime.fromtimestamp(int(claims["iat"]), tz=timezone.utc)
            expires_at = datetime.fromtimestamp(int(claims["exp"]), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as exc:
            raise TokenInvalidError("The token carries invalid timestamps.") from exc

        if expires_at <= self.clock.now():
            raise TokenExpiredError(f"The {expected_type} token has expired.")

        return TokenPayload(
            subject=str(claims["sub"]),
            email=claims["email"],
            issued_at=issued_at,
            expires_at=expires_at,
            token_type=expected_type,
            token_id=claims.get("jti"),
        )
