"""
Module: taxflow_kernel.db.engine
Responsibility: Async SQLAlchemy engine initialization, session factory
    management, and transactional scope utilities.  This is the single point
    of database connection configuration for the workflow core.
Architecture position: Kernel > DB.  May import from db/base.py.  MUST NOT
    import from services/ or outer layers (create_tables imports models/ to
    populate the metadata).

Invariants enforced:
    - Sessions never expire attributes on commit (expire_on_commit=False), so
      DTO snapshots taken after a commit never trigger implicit I/O.
    - Pool sizing applies only to server databases; SQLite URLs use the
      dialect's default pool.

Failure modes:
    - RuntimeError if get_engine/get_session_factory is called before
      init_engine_from_url().
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from taxflow_kernel.logging_config import get_logger

logger = get_logger("db.engine")

_engine: AsyncEngine | None = None
_SessionFactory: async_sessionmaker[AsyncSession] | None = None


def init_engine_from_url(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 5,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
) -> AsyncEngine:
    """
    Initialize the async engine from a database URL.

    Preconditions: database_url names an async driver, e.g.
        ``postgresql+asyncpg://...`` or ``sqlite+aiosqlite:///path.db``.
    Postconditions: Module-level engine and session factory are set.  A
        second call replaces the first.
    """
    global _engine, _SessionFactory

    kwargs: dict = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=pool_size,
            max_overflow=max_overflow,
            pool_timeout=pool_timeout,
            pool_recycle=pool_recycle,
        )

    _engine = create_async_engine(database_url, **kwargs)
    _SessionFactory = async_sessionmaker(_engine, expire_on_commit=False)

    logger.info(
        "engine_initialized",
        extra={"dialect": _engine.dialect.name, "echo": echo},
    )
    return _engine


def get_engine() -> AsyncEngine:
    if _engine is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get the session factory.

    Jobs open one session per record from this factory so that a failure
    rolls back only that record.
    """
    if _SessionFactory is None:
        raise RuntimeError("Engine not initialized. Call init_engine_from_url() first.")
    return _SessionFactory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession] | None = None,
) -> AsyncIterator[AsyncSession]:
    """
    Provide a transactional scope around a series of operations.

    On normal exit the session is committed; on exception it is rolled back
    and the exception is re-raised.  The session is always closed.

    Usage:
        async with session_scope() as session:
            session.add(entity)
    """
    session = (factory or get_session_factory())()
    try:
        yield session
        await session.commit()
    except Exception:
        await session.rollback()
        logger.warning("transaction_rolled_back", exc_info=True)
        raise
    finally:
        await session.close()


async def create_tables(engine: AsyncEngine | None = None) -> None:
    """Create every table registered on Base.metadata."""
    from taxflow_kernel.db.base import Base
    from taxflow_kernel.models import import_all_models

    import_all_models()
    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("tables_created", extra={"table_count": len(Base.metadata.tables)})


async def drop_tables(engine: AsyncEngine | None = None) -> None:
    """Drop all tables. Use with caution - primarily for testing."""
    from taxflow_kernel.db.base import Base

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def reset_engine() -> None:
    """Dispose the engine and forget the session factory."""
    global _engine, _SessionFactory

    if _engine is not None:
        await _engine.dispose()
        _engine = None
    _SessionFactory = None
