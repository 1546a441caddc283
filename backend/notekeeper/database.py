"""
NoteKeeper Backend: Database Session Management
=================================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
How:   One async engine per process with connection pooling; one session per
       request. NoteRepository commits its own units of work, so the session
       dependency only has to roll back on error and close.

Connection Pooling:
    pool_size / max_overflow / pool_pre_ping come from settings and apply to
    server databases only. SQLite (used by the test suite) manages its own
    pool and rejects those arguments.
"""

from typing import Any, AsyncGenerator, Dict

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from notekeeper.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """Create an async engine, applying pool options only where supported."""
    options: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not database_url.startswith("sqlite"):
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(database_url, **options)


engine = build_engine(settings.database_url)

# expire_on_commit=False: repository methods commit and then hand the same
# ORM objects back to the caller, which reads their attributes afterwards.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models (shared metadata for Alembic)."""
    pass


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    Behavior:
        1. Opens a session from the factory and yields it
        2. On success: commits anything still pending (normally nothing,
           NoteRepository commits per operation)
        3. On error: rolls back and re-raises for the global handlers
        4. Always: closes the session, returning the connection to the pool
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_schema(target: AsyncEngine) -> None:
    """Create all tables on the given engine (used by tests and local runs)."""
    # Models must be imported so their tables register on Base.metadata
    from notekeeper.models import note  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Close all pooled connections during application shutdown."""
    await engine.dispose()
