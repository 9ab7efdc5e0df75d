"""
Taskboard Backend — Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   Creates an async engine with connection pooling, provides a session
       dependency that auto-commits on success and auto-rolls-back on error.
Who:   Used by route handlers via FastAPI's dependency injection system, and
       by the reminder scanner which opens its own session per cycle.
When:  Engine is created at module import; sessions are created per-request.

Transaction boundary:
    One request = one transaction. Every state transition the core performs
    (invite accept, member insert, notification insert) is flushed inside the
    request session and becomes visible only when get_db_session() commits.
    A request aborted before that point leaves nothing behind.

    Notifications inserted during the transaction are queued on the session
    outbox and handed to the delivery sink only AFTER the commit succeeds.
"""

from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Dict

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator

from taskboard.config import settings


# ── Engine Configuration ──────────────────────────────────────────────────
def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    Pool sizing only applies to server databases; SQLite picks its own pool
    class and rejects pool_size/max_overflow for in-memory databases.
    """
    kwargs: Dict[str, Any] = {
        "echo": settings.log_level == "DEBUG",
    }
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(database_url, **kwargs)


engine = build_engine(settings.database_url)

# ── Session Factory ───────────────────────────────────────────────────────
# expire_on_commit=False: attributes stay readable after commit, which the
# route layer relies on when serializing the committed objects.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────────
class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


# ── Column Types ──────────────────────────────────────────────────────────
class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC timestamp column.

    What:  Normalizes every bound value to UTC and re-attaches UTC on load.
    Why:   PostgreSQL TIMESTAMPTZ round-trips aware datetimes, SQLite does not.
           Comparing a naive value loaded from SQLite with datetime.now(utc)
           raises TypeError, so the type hides that difference.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    """Current instant as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# ── Session Dependency ────────────────────────────────────────────────────
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the factory
        2. Yields it to the route handler (the handler performs queries)
        3. On success: commits the transaction, then flushes the delivery outbox
        4. On error: rolls back the transaction (discards changes)
        5. Always: closes the session (returns connection to pool)

    Raises:
        Any exception is propagated to the global error handlers.
    """
    from taskboard.services.delivery import discard_outbox, flush_outbox

    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            discard_outbox(session)
            raise
        finally:
            await session.close()
        await flush_outbox(session)


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def dispose_engine() -> None:
    """
    What:  Gracefully closes all connections in the pool.
    When:  Called during application shutdown (lifespan handler).
    """
    await engine.dispose()
