"""
Database Configuration

One async engine per process. The API and the queue consumers share the
same session factory; tests build their own engine with ``build_engine``.

SECURITY:
- SQLAlchemy echo disabled in production to prevent credential leakage
- Connection string never logged
"""

import logging
import time

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from minicrm.config import settings

logger = logging.getLogger(__name__)

SLOW_QUERY_THRESHOLD_MS = 500

# SQLite (tests, local runs) manages its own pool
SERVER_POOL_OPTIONS = {
    "pool_size": 20,
    "max_overflow": 10,
    "pool_recycle": 3600,
    "pool_pre_ping": True,
}


def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    conn.info["query_start_time"] = time.monotonic()


def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    start = conn.info.pop("query_start_time", None)
    if start is None:
        return
    duration_ms = (time.monotonic() - start) * 1000
    if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
        truncated = statement[:200] + ("..." if len(statement) > 200 else "")
        logger.warning("Slow query (%.0fms): %s", duration_ms, truncated)


def build_engine(url: str, **options) -> AsyncEngine:
    """Create an async engine with slow-query logging attached."""
    if not url.startswith("sqlite") and "poolclass" not in options:
        options = {**SERVER_POOL_OPTIONS, **options}
    new_engine = create_async_engine(url, future=True, **options)
    event.listen(new_engine.sync_engine, "before_cursor_execute", _before_cursor_execute)
    event.listen(new_engine.sync_engine, "after_cursor_execute", _after_cursor_execute)
    return new_engine


engine = build_engine(settings.DATABASE_URL, echo=settings.sqlalchemy_echo)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def get_db() -> AsyncSession:
    """Request-scoped session. The read endpoints never write, so nothing is committed here."""
    async with async_session_maker() as session:
        yield session


async def init_db():
    """Create missing tables (customers, orders, communication_logs)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
