"""
Alembic environment configuration for async migrations.

Runs migrations through the async SQLAlchemy engine built from the
application settings. A one-off URL can be passed on the command line
with ``alembic -x dburl=postgresql+asyncpg://... upgrade head``.

CHANGELOG:
- 2026-10-05: Accept -x dburl override, compare column types (STORY-108)
- 2026-09-27: Initial creation (STORY-102)

TODO:
- None
"""

import asyncio
from logging.config import fileConfig

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import Connection
from sqlalchemy.ext.asyncio import async_engine_from_config

from energyshare.config import get_settings
from energyshare.db.models import Base

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = Base.metadata


def get_url() -> str:
    """Return the database URL, preferring an ``-x dburl=...`` override."""
    override = context.get_x_argument(as_dictionary=True).get("dburl")
    if override:
        return override
    return get_settings().DATABASE_URL


def run_migrations_offline() -> None:
    """Emit migration SQL to the script output without a connection."""
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    """Run migrations on a synchronous connection handed over by run_sync."""
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    """Open an async engine without pooling and migrate over one connection."""
    section = config.get_section(config.config_ini_section, {})
    section["sqlalchemy.url"] = get_url()

    connectable = async_engine_from_config(
        section,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    async with connectable.connect() as connection:
        await connection.run_sync(do_run_migrations)

    await connectable.dispose()


if context.is_offline_mode():
    run_migrations_offline()
else:
    asyncio.run(run_async_migrations())
