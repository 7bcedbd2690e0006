"""Database connection management."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from analytics_service.config import Settings, get_settings


def get_async_engine():
    """Create async database engine with connection pooling."""
    settings = get_settings()
    return create_async_engine(
        settings.database_url,
        echo=settings.debug,
        poolclass=AsyncAdaptedQueuePool,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_pre_ping=True,
        pool_recycle=settings.db_pool_recycle,
    )


def _session_factory_for(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


_session_factory: async_sessionmaker[AsyncSession] | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get or create the global session factory."""
    global _session_factory
    if _session_factory is None:
        _session_factory = _session_factory_for(get_async_engine())
    return _session_factory


@asynccontextmanager
async def scoped_session_factory(
    settings: Settings,
) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Session factory over an engine owned by the caller's event loop.

    Worker tasks each run their own loop, so connections must not outlive
    it: the engine is unpooled and disposed when the block exits.
    """
    engine = create_async_engine(settings.database_url, echo=settings.debug, poolclass=NullPool)
    try:
        yield _session_factory_for(engine)
    finally:
        await engine.dispose()


@asynccontextmanager
async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """One session in one transaction; commits on success, rolls back on error."""
    factory = get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
