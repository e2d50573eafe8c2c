"""
Annotations Schema Migrations
===============================

What:  Alembic environment for the handler's `annotations` table.
How:   The database URL is the handler's own DATABASE_URL (app.config), so
       migrations always hit the same database the handler serves from. A
       one-off target can be given on the command line instead:

           alembic -x database_url=postgresql+asyncpg://... upgrade head

       Online runs go through a pool-less asyncpg engine; `--sql` runs only
       render the PostgreSQL DDL.
Who:   Run from backend/ before the first handler start and after every new
       revision. The gateway role has no database and never migrates.
"""

import asyncio
import logging
from logging.config import fileConfig

from sqlalchemy import pool
from sqlalchemy.engine import Connection, make_url
from sqlalchemy.ext.asyncio import async_engine_from_config
from alembic import context

from app.config import settings
from app.database import Base

# Registers the annotations table on Base.metadata for --autogenerate
from app.models.annotation import Annotation  # noqa: F401

config = context.config

if config.config_file_name is not None:
    # keep app.* loggers alive when migrations run inside the same process
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

target_metadata = Base.metadata


def database_url() -> str:
    """`-x database_url=...` if given, otherwise the handler's DATABASE_URL."""
    return context.get_x_argument(as_dictionary=True).get("database_url", settings.database_url)


config.set_main_option("sqlalchemy.url", database_url())
logger.info(
    "Migrating annotations schema on %s",
    make_url(config.get_main_option("sqlalchemy.url")).render_as_string(hide_password=True),
)


def run_migrations_offline() -> None:
    """Render the DDL for `alembic upgrade --sql` without connecting."""
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection: Connection) -> None:
    context.configure(
        connection=connection,
        target_metadata=target_metadata,
        # coordinate precision and VARCHAR(256) changes show up in autogenerate
        compare_type=True,
    )

    with context.begin_transaction():
        context.run_migrations()


async def run_async_migrations() -> None:
    connectable = async_engine_from_config(
        config.get_section(config.config_ini_section, {}),
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
