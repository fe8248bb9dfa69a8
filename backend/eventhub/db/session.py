"""
Async engine, session factory and unit-of-work scope.

Each core operation runs inside exactly one `unit_of_work`: one session,
one transaction, committed on success and rolled back on any error. The
session is always closed on exit.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from eventhub.core.config import get_settings
from eventhub.core.exceptions import ConcurrentModificationError
from eventhub.core.logging import get_logger

logger = get_logger(__name__)
settings = get_settings()

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_timeout=settings.DB_POOL_TIMEOUT,
    pool_recycle=settings.DB_POOL_RECYCLE,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker = AsyncSessionLocal,
) -> AsyncIterator[AsyncSession]:
    """
    Transactional scope around one core operation.

    A stale optimistic-version write surfaces as ConcurrentModificationError
    after the rollback, so the caller sees a conflict and nothing is written.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except StaleDataError as e:
            await session.rollback()
            logger.info("unit_of_work_stale_write", error=str(e))
            raise ConcurrentModificationError(
                "The record was modified concurrently. Reload and try again."
            ) from e
        except BaseException:
            await session.rollback()
            raise

