"""
services/password_hasher.py — bcrypt password hashing and verification.

- hash():   bcrypt with a fresh random salt on every call; the work factor
            (log rounds) comes from config BCRYPT_LOG_ROUNDS, default 12.
- verify(): bcrypt.checkpw recomputes with the salt embedded in the stored
            hash and compares in constant time. A malformed hash is a
            mismatch, not an error.

bcrypt only reads the first 72 bytes of its input. hash() and verify() both
cut the UTF-8 encoded password to that length before calling bcrypt, so a
long password is accepted rather than refused by newer bcrypt releases.

Raw passwords are never stored and never logged.
"""

from __future__ import annotations

import logging
import secrets

import bcrypt

from backend.accounts.errors import HashingError

logger = logging.getLogger(__name__)

DEFAULT_ROUNDS = 12
BCRYPT_MAX_BYTES = 72

# One throwaway hash per work factor, used to spend the same bcrypt time on
# logins for unknown emails as on logins with a wrong password.
_DUMMY_HASHES: dict[int, str] = {}


def _password_bytes(plaintext: str) -> bytes:
    return plaintext.encode("utf-8")[:BCRYPT_MAX_BYTES]


class PasswordHasher:

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}")
        self.rounds = rounds

    def hash(self, plaintext: str) -> str:
        try:
            salt = bcrypt.gensalt(rounds=self.rounds)
            hashed = bcrypt.hashpw(_password_bytes(plaintext), salt)
        except (OSError, ValueError) as exc:
            # OSError: the entropy source failed while generating the salt.
            # ValueError: bcrypt rejected the salt or its own input.
            logger.error("Password hashing failed: %s", type(exc).__name__)
            raise HashingError() from exc
        return hashed.decode("utf-8")

    def verify(self, plaintext: str, hashed: str | None) -> bool:
        if not hashed:
            return False
        try:
            return bcrypt.checkpw(
                _password_bytes(plaintext),
                hashed.encode("utf-8"),
            )
        except ValueError:
            # Malformed or foreign hash string.
            return False
        except OSError as exc:
            logger.error("Password verification failed: %s", type(exc).__name__)
            raise HashingError("Password verification failed.") from exc

    def dummy_verify(self, plaintext: str) -> bool:
        """Runs a full verify against a throwaway hash. Always False."""
        dummy = _DUMMY_HASHES.get(self.rounds)
        if dummy is None:
            dummy = self.hash(secrets.token_urlsafe(16))
            _DUMMY_HASHES[self.rounds] = dummy
        self.verify(plaintext, dummy)
        return False
