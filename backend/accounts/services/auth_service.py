"""
services/auth_service.py — authentication and session lifecycle.

Responsibilities:
  - Registration (unverified account + 24 h verification token)
  - Credential verification with failed-attempt counting and lockout
  - Access/refresh token pair issuance and refresh-token persistence
  - Access-token renewal, single-device logout, logout on all devices
  - Expired refresh-token sweep
  - Email verification and account lookup

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes
  - No commits: stores flush, the route or CLI command commits

Composition:
  AuthService receives its collaborators (hasher, stores, token issuer,
  clock) at construction. build_auth_service() wires them from a SQLAlchemy
  session and a Flask-style config mapping.

Login eligibility:
  UNVERIFIED → VERIFIED_UNLOCKED ⇄ VERIFIED_LOCKED
  "Locked" is `locked_until > now`, computed on every login. It is never
  persisted as a flag and lapses without a write.

Refresh tokens are NOT rotated on use: the same refresh token stays valid
until it expires or is revoked by logout / logout-all.
"""

from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from backend.accounts.clock import SystemClock, ensure_utc
from backend.accounts.errors import (
    AccountLockedError,
    AccountNotFoundError,
    DuplicateEmailError,
    EmailNotVerifiedError,
    InvalidAccessTokenError,
    InvalidCredentialsError,
    InvalidRefreshTokenError,
    InvalidVerificationTokenError,
    TokenExpiredError,
    TokenInvalidError,
)
from backend.accounts.models.account import Account
from backend.accounts.services.password_hasher import PasswordHasher
from backend.accounts.services.token_issuer import TokenIssuer, TokenPair
from backend.accounts.stores.account_store import AccountStore
from backend.accounts.stores.refresh_token_store import RefreshTokenStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOGIN_ATTEMPTS = 5
DEFAULT_LOCKOUT_DURATION = timedelta(minutes=15)
DEFAULT_VERIFICATION_TTL = timedelta(hours=24)


@dataclass(frozen=True)
class AccountView:
    """Public projection of an Account. Never carries hashes or tokens."""

    id: str
    email: str
    is_verified: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_account(cls, account: Account) -> "AccountView":
        return cls(
            id=account.id,
            email=account.email,
            is_verified=bool(account.is_verified),
            created_at=ensure_utc(account.created_at).isoformat(),
            updated_at=ensure_utc(account.updated_at).isoformat(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "is_verified": self.is_verified,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class LoginResult:
    account: AccountView
    tokens: TokenPair

    def to_dict(self) -> dict:
        return {
            "account": self.account.to_dict(),
            **self.tokens.to_dict(),
        }


class AuthService:

    def __init__(
            self,
            hasher: PasswordHasher,
            accounts: AccountStore,
            refresh_tokens: RefreshTokenStore,
            tokens: TokenIssuer,
            clock=None,
            max_login_attempts: int = DEFAULT_MAX_LOGIN_ATTEMPTS,
            lockout_duration: timedelta = DEFAULT_LOCKOUT_DURATION,
            verification_ttl: timedelta = DEFAULT_VERIFICATION_TTL,
    ) -> None:
        if max_login_attempts < 1:
            raise ValueError("max_login_attempts must be at least 1")
        self.hasher = hasher
        self.accounts = accounts
        self.refresh_tokens = refresh_tokens
        self.tokens = tokens
        self.clock = clock or SystemClock()
        self.max_login_attempts = max_login_attempts
        self.lockout_duration = lockout_duration
        self.verification_ttl = verification_ttl

    # ── Registration ───────────────────────────────────────────────────────

    def register(self, email: str, password: str) -> AccountView:
        """
        Creates an unverified account.

        Raises:
          DuplicateEmailError — email already registered (pre-check or the
                                unique constraint, whichever fires first)
          HashingError        — bcrypt failure, propagated unchanged
        """
        # Fast path only; the unique constraint in AccountStore.create is
        # what closes the race between two concurrent registrations.
        if self.accounts.find_by_email(email) is not None:
            raise DuplicateEmailError(email)

        now = self.clock.now()
        account = Account(
            email=email,
            password_hash=self.hasher.hash(password),
            is_verified=False,
            verification_token=secrets.token_urlsafe(32),
            verification_token_expires=now + self.verification_ttl,
            failed_login_attempts=0,
            created_at=now,
            updated_at=now,
        )
        self.accounts.create(account)

        logger.info("Registered account %s", account.id)
        return AccountView.from_account(account)

    def verify_email(self, token: str) -> AccountView:
        """
        Consumes a verification token and marks the account verified.

        Raises:
          InvalidVerificationTokenError — unknown, already used, or expired
        """
        account = self.accounts.find_by_verification_token(token) if token else None
        if account is None:
            raise InvalidVerificationTokenError()

        now = self.clock.now()
        expires = ensure_utc(account.verification_token_expires)
        if expires is None or expires <= now:
            raise InvalidVerificationTokenError()

        account.is_verified = True
        account.verification_token = None
        account.verification_token_expires = None
        account.updated_at = now
        self.accounts.save(account)

        logger.info("Verified email for account %s", account.id)
        return AccountView.from_account(account)

    # ── Login ──────────────────────────────────────────────────────────────

    def login(self, email: str, password: str) -> LoginResult:
        """
        Validates credentials and issues an access + refresh token pair.

        Check order: exists → not locked → verified → password.

        Raises:
          InvalidCredentialsError — unknown email or wrong password (same
                                    error for both to avoid enumeration)
          AccountLockedError      — locked_until is in the future
          EmailNotVerifiedError   — email not verified yet
        """
        account = self.accounts.find_by_email(email)
        if account is None:
            # Spend the same bcrypt time as a real mismatch.
            self.hasher.dummy_verify(password)
            raise InvalidCredentialsError()

        now = self.clock.now()
        remaining = self._lock_remaining(account, now)
        if remaining is not None:
            raise AccountLockedError(remaining)

        if not account.is_verified:
            raise EmailNotVerifiedError()

        if not self.hasher.verify(password, account.password_hash):
            self._handle_failed_login(account, now)
            raise InvalidCredentialsError()

        if account.failed_login_attempts > 0 or account.locked_until is not None:
            account.failed_login_attempts = 0
            account.locked_until = None
            account.updated_at = now
            self.accounts.save(account)

        tokens = self.tokens.issue_token_pair(account.id, account.email)
        self.refresh_tokens.create(
            account_id=account.id,
            token=tokens.refresh_token,
            expires_at=now + self.tokens.refresh_ttl,
        )

        logger.info("Login succeeded for account %s", account.id)
        return LoginResult(account=AccountView.from_account(account), tokens=tokens)

    def _lock_remaining(self, account: Account, now) -> timedelta | None:
        """Time left on the lockout, or None when the account is not locked."""
        locked_until = ensure_utc(account.locked_until)
        if locked_until is None or locked_until <= now:
            return None
        return locked_until - now

    def _handle_failed_login(self, account: Account, now) -> None:
        self.accounts.record_failed_login(
            account,
            max_attempts=self.max_login_attempts,
            lock_until=now + self.lockout_duration,
            updated_at=now,
        )
        logger.info(
            "Failed login for account %s (attempt %d)",
            account.id,
            account.failed_login_attempts,
        )
        if account.failed_login_attempts >= self.max_login_attempts:
            logger.warning(
                "Account %s locked until %s",
                account.id,
                ensure_utc(account.locked_until).isoformat(),
            )

    # ── Refresh / logout ───────────────────────────────────────────────────

    def refresh(self, refresh_token: str) -> dict:
        """
        Exchanges a refresh token for a new access token.

        Expired and invalid signatures both become InvalidRefreshTokenError:
        at this boundary either one means "please log in again".

        Raises:
          InvalidRefreshTokenError — bad signature, expired, never issued,
                                     revoked, or owner no longer exists

        Returns: {"access_token": "..."}
        """
        try:
            payload = self.tokens.verify_refresh_token(refresh_token)
        except (TokenExpiredError, TokenInvalidError) as exc:
            logger.info("Refresh rejected: %s", exc.code)
            raise InvalidRefreshTokenError() from exc

        record = self.refresh_tokens.find_by_token(refresh_token)
        if record is None or ensure_utc(record.expires_at) <= self.clock.now():
            logger.info("Refresh rejected: token not on record or expired")
            raise InvalidRefreshTokenError()

        account = record.account
        if account is None or account.id != payload.subject:
            raise InvalidRefreshTokenError()

        return {
            "access_token": self.tokens.issue_access_token(account.id, account.email),
        }

    def logout(self, refresh_token: str | None) -> None:
        """Revokes one refresh token. Missing or unknown tokens are a no-op."""
        if not refresh_token:
            return
        self.refresh_tokens.delete_by_token(refresh_token)

    def logout_all_devices(self, account_id: str) -> int:
        """Revokes every refresh token owned by the account."""
        removed = self.refresh_tokens.delete_all_for_owner(account_id)
        logger.info("Revoked %d refresh token(s) for account %s", removed, account_id)
        return removed

    def cleanup_expired_tokens(self) -> int:
        """Deletes refresh tokens with expires_at <= now. Returns the count."""
        removed = self.refresh_tokens.delete_expired(self.clock.now())
        logger.info("Expired refresh token sweep removed %d row(s)", removed)
        return removed

    # ── Access tokens / lookups ────────────────────────────────────────────

    def validate_access_token(self, token: str) -> AccountView:
        """
        Raises:
          InvalidAccessTokenError — expired, malformed, or the account no
                                    longer exists. The message tells an
                                    expired token apart from a bad one.
        """
        try:
            payload = self.tokens.verify_access_token(token)
        except TokenExpiredError as exc:
            raise InvalidAccessTokenError(
                "The access token has expired. Use POST /auth/refresh to obtain a new one."
            ) from exc
        except TokenInvalidError as exc:
            raise InvalidAccessTokenError() from exc

        account = self.accounts.find_by_id(payload.subject)
        if account is None:
            raise InvalidAccessTokenError("The account for this token no longer exists.")
        return AccountView.from_account(account)

    def get_account(self, account_id: str) -> AccountView:
        """
        Raises:
          AccountNotFoundError — no account with this id
        """
        account = self.accounts.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return AccountView.from_account(account)


def build_auth_service(session, config, clock=None) -> AuthService:
    """Wires an AuthService from a SQLAlchemy session and app config."""
    clock = clock or SystemClock()
    return AuthService(
        hasher=PasswordHasher(rounds=config.get("BCRYPT_LOG_ROUNDS", 12)),
        accounts=AccountStore(session),
        refresh_tokens=RefreshTokenStore(session),
        tokens=TokenIssuer.from_config(config, clock=clock),
        clock=clock,
        max_login_attempts=config.get("MAX_LOGIN_ATTEMPTS", DEFAULT_MAX_LOGIN_ATTEMPTS),
        lockout_duration=config.get("LOCKOUT_DURATION", DEFAULT_LOCKOUT_DURATION),
        verification_ttl=config.get("VERIFICATION_TOKEN_TTL", DEFAULT_VERIFICATION_TTL),
    )
