"""
Point Cloud Annotator Backend: Database Engine & Sessions
===========================================================

What:  Async SQLAlchemy engine construction, session factory, declarative base
       and lifecycle helpers (connectivity check, table creation, disposal).
How:   The handler lifespan calls build_engine() once, wraps it in a session
       factory and hands that factory to the AnnotationStore. The gateway role
       never touches this module at runtime.

Connection Pooling:
    pool_size=2:      persistent connections kept open (the pool floor)
    max_overflow=8:   temporary connections under load (ceiling = 10)
    pool_pre_ping:    validates a connection before handing it out
    pool_recycle=3600 recycles connections hourly

    SQLite URLs (local development, tests) get SQLAlchemy's default pool for
    that dialect instead; the sizing arguments are PostgreSQL-only.
"""

import logging

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    stop_after_attempt,
    wait_exponential_jitter,
)

from app.config import Settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Shares a single metadata object between the models, create_tables()
    and Alembic's autogenerate.
    """
    pass


# ── Engine & Session Factory ──────────────────────────────────────────────

def build_engine(app_settings: Settings) -> AsyncEngine:
    """
    Create the async engine for the configured DATABASE_URL.

    The engine connects lazily; nothing touches the network until the first
    query (see wait_for_database()).
    """
    url = make_url(app_settings.database_url)
    options = {"echo": app_settings.log_level == "DEBUG"}

    if not url.drivername.startswith("sqlite"):
        options.update(
            pool_size=app_settings.db_pool_size,
            max_overflow=app_settings.db_max_overflow,
            pool_pre_ping=app_settings.db_pool_pre_ping,
            pool_recycle=3600,
        )

    return create_async_engine(url, **options)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """
    Session factory shared by every store operation.

    expire_on_commit=False keeps ORM attributes readable after commit, which
    the store relies on when converting rows to response schemas.
    """
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# ── Lifecycle Helpers ─────────────────────────────────────────────────────

async def ping_database(engine: AsyncEngine) -> None:
    """Run SELECT 1; raises whatever the driver raises when unreachable."""
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def wait_for_database(engine: AsyncEngine, app_settings: Settings) -> None:
    """
    Block startup until the database answers, with exponential backoff.

    Containers start in parallel under docker-compose, so the first few
    connection attempts commonly fail while PostgreSQL is still booting.
    The last failure is re-raised once the attempts are exhausted.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(app_settings.startup_retry_attempts),
        wait=wait_exponential_jitter(initial=0.5, max=app_settings.startup_retry_max_wait),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            await ping_database(engine)

    logger.info("Connected to database %s", engine.url.render_as_string(hide_password=True))


async def create_tables(engine: AsyncEngine) -> None:
    """
    Create every mapped table that does not exist yet (CREATE TABLE IF NOT EXISTS).

    Equivalent to the initial Alembic revision; deployments that manage the
    schema with `alembic upgrade head` set DB_AUTO_CREATE=false.
    """
    # Registers the annotations table on Base.metadata
    from app.models import annotation  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine(engine: AsyncEngine) -> None:
    """Close every pooled connection; called from the lifespan on shutdown."""
    await engine.dispose()
    logger.info("Closed database connection pool")
