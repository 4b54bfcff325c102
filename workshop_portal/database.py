"""
Database Configuration

SECURITY:
- SQLAlchemy echo disabled in production to prevent credential leakage
- Connection string never logged
"""

import logging
import time
from typing import Callable

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from workshop_portal.config import settings

logger = logging.getLogger(__name__)


class SlowQueryLog:
    """Warns about statements that run longer than ``threshold_ms``.

    Only the first line of the statement and the parameter count are logged,
    never parameter values.
    """

    def __init__(self, threshold_ms: int, clock: Callable[[], float] = time.perf_counter):
        self.threshold_ms = threshold_ms
        self.clock = clock

    def attach(self, engine: AsyncEngine) -> None:
        event.listen(engine.sync_engine, "before_cursor_execute", self.before)
        event.listen(engine.sync_engine, "after_cursor_execute", self.after)

    def before(self, conn, cursor, statement, parameters, context, executemany):
        conn.info.setdefault("workshop_query_started", []).append(self.clock())

    def after(self, conn, cursor, statement, parameters, context, executemany):
        started = conn.info.get("workshop_query_started")
        if not started:
            return
        duration_ms = (self.clock() - started.pop()) * 1000
        if duration_ms < self.threshold_ms:
            return
        first_line = statement.strip().splitlines()[0] if statement.strip() else ""
        logger.warning(
            f"Slow query took {duration_ms:.0f}ms: {first_line[:120]}",
            extra={
                "duration_ms": round(duration_ms),
                "param_count": len(parameters) if parameters else 0,
                "executemany": executemany,
            },
        )


engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.sqlalchemy_echo,
    future=True,
    pool_pre_ping=True,
    pool_recycle=3600,
)

# 0 turns the warning off
if settings.SLOW_QUERY_MS > 0:
    SlowQueryLog(settings.SLOW_QUERY_MS).attach(engine)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


async def get_db() -> AsyncSession:
    """Yield one session per request.

    Inventory writes commit inside the store's atomic sections; this
    dependency only closes the session afterwards.
    """
    session = async_session_maker()
    try:
        yield session
    finally:
        await session.close()


async def init_db():
    """Create any missing tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
