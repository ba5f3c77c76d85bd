"""
commands.py — `flask accounts ...` maintenance commands.

  flask accounts init-db          create all tables (dev/test; use Alembic elsewhere)
  flask accounts cleanup-tokens   delete refresh tokens whose expires_at has passed
  flask accounts verify EMAIL     mark an account verified without the email flow

Intended to be run from cron / a scheduler or by hand in development.
"""

from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup

from backend.accounts.errors import AccountNotFoundError
from backend.accounts.extensions import db
from backend.accounts.services.auth_service import build_auth_service

accounts_cli = AppGroup("accounts", help="Account and session maintenance.")


def _service():
    return build_auth_service(
        db.session,
        current_app.config,
        clock=current_app.extensions["accounts_clock"],
    )


@accounts_cli.command("init-db")
def init_db() -> None:
    """Create all tables."""
    db.create_all()
    click.echo("Database tables created.")


@accounts_cli.command("cleanup-tokens")
def cleanup_tokens() -> None:
    """Delete expired refresh tokens."""
    removed = _service().cleanup_expired_tokens()
    db.session.commit()
    click.echo(f"Removed {removed} expired refresh token(s).")


@accounts_cli.command("verify")
@click.argument("email")
def verify(email: str) -> None:
    """Mark the account for EMAIL as verified. For dev/test purposes only."""
    service = _service()
    account = service.accounts.find_by_email(email)
    if account is None:
        raise click.ClickException(AccountNotFoundError(email).message)

    account.is_verified = True
    account.verification_token = None
    account.verification_token_expires = None
    account.updated_at = service.clock.now()
    service.accounts.save(account)
    db.session.commit()
    click.echo(f"Account {account.id} ({email}) marked as verified.")
