"""Async SQLAlchemy engine and session helpers."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.exc import InterfaceError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from setbuilder.config import settings

logger = logging.getLogger(__name__)

engine = create_async_engine(
    settings.database_url,
    pool_size=settings.database_pool_size,
    max_overflow=settings.database_max_overflow,
    echo=settings.database_echo,
    pool_pre_ping=True,
    pool_recycle=300,  # seconds
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


def _has_pending_state(session: AsyncSession) -> bool:
    return bool(session.new or session.dirty or session.deleted)


async def _rollback_quietly(session: AsyncSession) -> None:
    try:
        await session.rollback()
    except Exception:
        logger.warning("Rollback failed (connection likely closed)")


@asynccontextmanager
async def get_session_context(
    *,
    commit_on_exit: bool = True,
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a short-lived session; commit on clean exit, roll back on error."""
    async with async_session_maker() as session:
        try:
            yield session
            if commit_on_exit or _has_pending_state(session):
                await session.commit()
        except InterfaceError as exc:
            if not session.in_transaction() and not _has_pending_state(session):
                # Connection dropped after the work was already committed.
                logger.debug("Session connection already closed during cleanup, ignoring")
                return
            logger.warning(
                "Database interface error with active transaction, rolling back",
                extra={"error": repr(exc)},
            )
            await _rollback_quietly(session)
            raise
        except Exception as exc:
            logger.warning("Database session error, rolling back", extra={"error": repr(exc)})
            await _rollback_quietly(session)
            raise


async def init_db() -> None:
    """Create tables when they do not exist yet (development only)."""
    logger.info("Initializing database tables")
    from setbuilder.models.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose pooled database connections."""
    logger.info("Closing database connections")
    await engine.dispose()
