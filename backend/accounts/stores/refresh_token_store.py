"""
stores/refresh_token_store.py — durable RefreshToken records.

The bearer string is never persisted: every method hashes the presented
token with SHA-256 and works on token_hash.

find_by_token() returns the row even if it has expired; callers must treat
`expires_at <= now` as not found. The expiry sweep (delete_expired) is
background cleanup, not a correctness dependency.
"""

from __future__ import annotations

import hashlib
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session, joinedload

from backend.accounts.models.refresh_token import RefreshToken


def hash_token(raw_token: str) -> str:
    """SHA-256 hex digest of a raw token string."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


class RefreshTokenStore:

    def __init__(self, session: Session) -> None:
        self.session = session

    def create(
            self,
            account_id: str,
            token: str,
            expires_at: datetime,
    ) -> RefreshToken:
        record = RefreshToken(
            account_id=account_id,
            token_hash=hash_token(token),
            expires_at=expires_at,
        )
        self.session.add(record)
        # flush so the row exists before we return; commit is the route's job
        self.session.flush()
        return record

    def find_by_token(self, token: str) -> RefreshToken | None:
        """Looks up a token and eagerly resolves its owning account."""
        return self.session.execute(
            select(RefreshToken)
            .options(joinedload(RefreshToken.account))
            .where(RefreshToken.token_hash == hash_token(token))
        ).scalar_one_or_none()

    def delete_by_token(self, token: str) -> int:
        """Deletes the matching row, if any. Returns the number of rows removed."""
        result = self.session.execute(
            delete(RefreshToken)
            .where(RefreshToken.token_hash == hash_token(token))
            .execution_options(synchronize_session=False)
        )
        self.session.flush()
        return result.rowcount or 0

    def delete_all_for_owner(self, account_id: str) -> int:
        result = self.session.execute(
            delete(RefreshToken)
            .where(RefreshToken.account_id == account_id)
            .execution_options(synchronize_session=False)
        )
        self.session.flush()
        return result.rowcount or 0

    def delete_expired(self, now: datetime) -> int:
        """
        Bulk-deletes rows with expires_at <= now.

        A plain DELETE ... WHERE: safe to run repeatedly and concurrently.
        """
        result = self.session.execute(
            delete(RefreshToken)
            .where(RefreshToken.expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        self.session.flush()
        return result.rowcount or 0

    def count_for_owner(self, account_id: str) -> int:
        return self.session.execute(
            select(func.count())
            .select_from(RefreshToken)
            .where(RefreshToken.account_id == account_id)
        ).scalar_one()
