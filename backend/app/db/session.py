"""
Async engine and session factory.

Sessions are request-scoped. Booking transactions commit or roll back
explicitly inside the store adapter; `get_db` only guarantees that a session
which escaped with an open transaction is rolled back before it is closed.
"""

from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import get_settings

settings = get_settings()


def _engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_recycle": settings.DB_POOL_RECYCLE,
        "pool_pre_ping": True,
    }


def enable_sqlite_write_lock(sync_engine: Engine) -> None:
    """
    Start every SQLite transaction with BEGIN IMMEDIATE.

    The driver otherwise defers BEGIN until the first INSERT/UPDATE, so the
    duplicate and capacity reads of two racing creates would run outside any
    transaction. With the write lock taken up front, transactions on a SQLite
    database run one at a time, which is the per-session lock PostgreSQL
    gets from pg_advisory_xact_lock.
    """

    @event.listens_for(sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    **_engine_options(settings.DATABASE_URL),
)
if engine.dialect.name == "sqlite":
    enable_sqlite_write_lock(engine.sync_engine)

AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
