"""Alembic environment configuration for async SQLAlchemy.

Supports both offline (SQL generation) and online (direct DB) migration modes.
The database URL comes from ``DATABASE_URL`` or, failing that, from the
application settings.
"""

from __future__ import annotations

import asyncio
import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.dialects.postgresql import named_types as _pg_named_types
from sqlalchemy.ext.asyncio import async_engine_from_config

import src.core.models  # noqa: F401  registers every model with Base.metadata
from src.core.config import get_settings
from src.core.database import Base

config = context.config

# ---------------------------------------------------------------------------
# Force checkfirst=True when PostgreSQL enum types are created.
#
# The imported models attach _on_table_create listeners to their sa.Enum
# columns; op.create_table() on the same table names fires them again and
# PG answers "type already exists" for enums shared between tables
# (record_kind is used by status_history and attestations).
# ---------------------------------------------------------------------------
_orig_on_table_create = _pg_named_types.NamedType._on_table_create


def _patched_on_table_create(self, target, bind, **kw):  # type: ignore[no-untyped-def]
    kw["checkfirst"] = True
    return _orig_on_table_create(self, target, bind, **kw)


_pg_named_types.NamedType._on_table_create = _patched_on_table_create  # type: ignore[assignment]

config.set_main_option("sqlalchemy.url", os.environ.get("DATABASE_URL") or get_settings().database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Generates SQL scripts without connecting to the database.
    """
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection):  # type: ignore[no-untyped-def]
    context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Run migrations in 'online' mode using async engine."""
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


def run_migrations_online() -> None:
    asyncio.run(run_async_migrations())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
