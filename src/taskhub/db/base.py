"""Database connection, session and transaction management."""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from taskhub.config import settings

logger = logging.getLogger("taskhub.db")


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to PostgreSQL."""
    options: dict[str, Any] = {"echo": settings.debug, "pool_pre_ping": True}
    if database_url.startswith("postgresql"):
        options["pool_size"] = settings.database_pool_size
        options["max_overflow"] = settings.database_max_overflow
    options.update(kwargs)
    return create_async_engine(database_url, **options)


def build_session_factory(target_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(target_engine, class_=AsyncSession, expire_on_commit=False)


# Process-wide handles, created lazily (no connection until first use)
engine = build_engine(settings.database_url)
async_session_factory = build_session_factory(engine)


async def init_db() -> None:
    """Initialize database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Close database connections."""
    await engine.dispose()


@asynccontextmanager
async def transaction(
    session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncGenerator[AsyncSession, None]:
    """
    Scoped unit of work.

    Commits when the block exits normally and rolls back when it raises.
    The session (and its pooled connection) is closed on every exit path,
    including when commit or rollback themselves fail. A rollback failure is
    logged and the original error is the one propagated.
    """
    factory = session_factory or async_session_factory
    session = factory()
    try:
        yield session
        await session.commit()
    except BaseException:
        try:
            await session.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback failed: {rollback_error}", exc_info=True)
        raise
    finally:
        await session.close()
