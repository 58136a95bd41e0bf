"""
Database connection management.

Builds the SQLAlchemy async engine and session factory shared by every
repository. In production the driver is psycopg 3 (``postgresql+psycopg``).
"""

import logging
from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from feralis_auth.application.config import DatabaseSettings

logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    database = url.partition("://")[2].lstrip("/")
    return database in ("", ":memory:") or "mode=memory" in database


def _use_immediate_transactions(engine: AsyncEngine) -> None:
    """Take the write lock at BEGIN so competing writers wait instead of failing."""

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_engine(settings: DatabaseSettings) -> AsyncEngine:
    """
    Create the async engine for the configured database.

    In-memory SQLite (used in tests) gets a static pool so the database
    survives across sessions. File-backed SQLite keeps one connection per
    session and takes the write lock at BEGIN, so concurrent writers queue.
    """
    kwargs: dict[str, Any] = {"echo": settings.echo}
    if settings.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(settings.url):
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_size"] = settings.pool_size
        kwargs["max_overflow"] = settings.max_overflow
        kwargs["pool_pre_ping"] = True

    engine = create_async_engine(settings.url, **kwargs)
    if settings.url.startswith("sqlite") and not _is_memory_sqlite(settings.url):
        _use_immediate_transactions(engine)
    logger.info(f"Database engine created for {engine.url.render_as_string(hide_password=True)}")
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with objects usable after commit."""
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all auth tables. Development and tests only."""
    from feralis_auth.infrastructure.auth.models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
