"""
backend/migrations/env.py — Alembic environment for the accounts schema.

The database URL comes from the same config class the app would load
(FLASK_ENV selects it; DATABASE_URL / TEST_DATABASE_URL feed it), so
migrations and the running service always agree on the target database.

  FLASK_ENV=production alembic -c backend/alembic.ini upgrade head
"""

from __future__ import annotations

from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from backend.config import ActiveConfig
from backend.accounts.extensions import db
from backend.accounts.models import Account, RefreshToken  # noqa: F401

target_metadata = db.metadata

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

db_url = config.get_main_option("sqlalchemy.url") or ActiveConfig.SQLALCHEMY_DATABASE_URI
if not db_url:
    raise RuntimeError("No database URL: set DATABASE_URL or sqlalchemy.url.")
config.set_main_option("sqlalchemy.url", db_url)

# SQLite cannot ALTER most constraints in place.
_batch = db_url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting (alembic upgrade --sql)."""
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=_batch,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=_batch,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
