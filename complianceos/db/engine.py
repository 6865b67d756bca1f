"""
Async SQLAlchemy engine and sessions.

PostgreSQL (asyncpg) in production, SQLite (aiosqlite) for local runs.
The engine is created lazily on first use and shared by the API process;
the scheduler process builds its own with a smaller pool.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from complianceos.config import settings

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    pass


_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def build_engine(pool_size: Optional[int] = None, max_overflow: Optional[int] = None) -> AsyncEngine:
    url = settings.async_database_url
    options: dict = {"echo": settings.debug}
    if not url.startswith("sqlite"):
        options["pool_size"] = pool_size or settings.db_pool_size
        options["max_overflow"] = settings.db_max_overflow if max_overflow is None else max_overflow
        options["pool_recycle"] = settings.db_pool_recycle
    return create_async_engine(url, **options)


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def get_engine() -> AsyncEngine:
    global _engine
    if _engine is None:
        _engine = build_engine()
        logger.info("database_engine_created", backend=_engine.dialect.name)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: Optional[async_sessionmaker[AsyncSession]] = None,
) -> AsyncIterator[AsyncSession]:
    """Session that commits when the block exits cleanly and rolls back otherwise."""
    async with (factory or get_session_factory())() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create tables and seed the framework catalog in development.

    Other environments expect the schema to be provisioned already.
    """
    import complianceos.db.models  # noqa: F401

    if not settings.is_development:
        logger.info("skipping_auto_create", environment=settings.environment)
        return

    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    from complianceos.services.framework_catalog import seed_builtin_frameworks

    async with session_scope() as session:
        await seed_builtin_frameworks(session)
    logger.info("database_initialized", mode="development")


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is None:
        return
    await _engine.dispose()
    _engine = None
    _session_factory = None
    logger.info("database_closed")
