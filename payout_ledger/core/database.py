"""Async engine, session factory and declarative base for the ledger tables."""

from typing import Any, AsyncIterator, Dict

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from payout_ledger.core.settings import settings


def _is_sqlite(database_url: str) -> bool:
    return make_url(database_url).get_backend_name() == "sqlite"


def _engine_options(database_url: str) -> Dict[str, Any]:
    options: Dict[str, Any] = {"echo": settings.env == "dev"}
    # SQLite (local runs) has no server connection to ping or pool
    if not _is_sqlite(database_url):
        options.update(pool_pre_ping=True, pool_size=10, max_overflow=5)
    return options


def enable_sqlite_savepoints(async_engine: AsyncEngine) -> None:
    """
    Make SAVEPOINT nest inside the real transaction on SQLite.

    The sqlite3 driver only opens a transaction before DML, so a SAVEPOINT
    issued first becomes the outermost transaction and RELEASE commits it.
    Here the driver's own BEGIN handling is turned off and SQLAlchemy emits
    BEGIN when its transaction starts.
    """

    @event.listens_for(async_engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")


engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))
if _is_sqlite(settings.database_url):
    enable_sqlite_savepoints(engine)

# Ledger services read records back after commit
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all ledger models."""

    pass


async def get_db() -> AsyncIterator[AsyncSession]:
    """Request-scoped session; the ledger service commits or rolls back itself."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    """Create missing tables."""
    import payout_ledger.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Release pooled connections on shutdown."""
    await engine.dispose()
