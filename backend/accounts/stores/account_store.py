"""
stores/account_store.py — durable Account records.

Every operation touches exactly one row. Nothing here commits: flush so the
row exists, commit is the caller's job (route or CLI command).

Email uniqueness is enforced by the unique constraint on accounts.email.
create() runs the INSERT inside a SAVEPOINT so an IntegrityError from a
concurrent registration can be turned into DuplicateEmailError without
poisoning the caller's transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.accounts.errors import DuplicateEmailError
from backend.accounts.models.account import Account

logger = logging.getLogger(__name__)


class AccountStore:

    def __init__(self, session: Session) -> None:
        self.session = session

    def find_by_email(self, email: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.email == email)
        ).scalar_one_or_none()

    def find_by_id(self, account_id: str) -> Account | None:
        return self.session.get(Account, account_id)

    def find_by_verification_token(self, token: str) -> Account | None:
        return self.session.execute(
            select(Account).where(Account.verification_token == token)
        ).scalar_one_or_none()

    def create(self, account: Account) -> Account:
        """
        Inserts a new account.

        Raises:
          DuplicateEmailError — the unique constraint on email fired.
        """
        try:
            with self.session.begin_nested():
                self.session.add(account)
                self.session.flush()
        except IntegrityError as exc:
            logger.info("Registration rejected by unique constraint on accounts.email")
            raise DuplicateEmailError(account.email) from exc
        return account

    def save(self, account: Account) -> Account:
        """Persists pending changes on an already-loaded account. Idempotent."""
        self.session.add(account)
        self.session.flush()
        return account

    def delete(self, account: Account) -> None:
        """Deletes the account; its refresh tokens go with it (ON DELETE CASCADE)."""
        self.session.delete(account)
        self.session.flush()

    def record_failed_login(
            self,
            account: Account,
            max_attempts: int,
            lock_until: datetime,
            updated_at: datetime,
    ) -> Account:
        """
        Increments failed_login_attempts and, once the new value reaches
        `max_attempts`, sets locked_until, in a single UPDATE. updated_at is
        taken from the caller's clock.

        Both SET expressions read the pre-update row, so concurrent failures
        each count once instead of overwriting each other's increment.
        Returns the account refreshed from the database.
        """
        self.session.execute(
            update(Account)
            .where(Account.id == account.id)
            .values(
                failed_login_attempts=Account.failed_login_attempts + 1,
                locked_until=case(
                    (Account.failed_login_attempts + 1 >= max_attempts, lock_until),
                    else_=Account.locked_until,
                ),
                updated_at=updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.refresh(account)
        return account
