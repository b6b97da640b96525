"""
Database connection and session management
"""
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.database.models import Base
from infrastructure.config.settings import settings
from infrastructure.logging.logger import get_logger

logger = get_logger(__name__)

# Engine is created lazily in init_db() to avoid connecting at import time
engine = None
async_session_factory: Optional[async_sessionmaker] = None


class DatabaseSession:
    """Context manager for database sessions (async only)"""

    def __init__(self):
        self.session = None

    async def __aenter__(self) -> AsyncSession:
        if async_session_factory is None:
            raise RuntimeError("Database not initialized. Call init_db() first.")
        self.session = async_session_factory()
        return self.session

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.session:
            try:
                if exc_type is None:
                    await self.session.commit()
                else:
                    await self.session.rollback()
            finally:
                await self.session.close()


def get_db() -> DatabaseSession:
    """
    Get a database session

    Returns:
        DatabaseSession: Async context manager that commits on success
        and rolls back if the block raises
    """
    return DatabaseSession()


def _engine_kwargs(database_url: str) -> dict:
    engine_kwargs = {
        "echo": settings.debug,  # SQL logging in debug mode
    }

    # Pool parameters only for PostgreSQL, not for SQLite
    if not database_url.startswith("sqlite"):
        engine_kwargs.update({
            "pool_size": settings.database.pool_size,
            "max_overflow": settings.database.max_overflow,
            "pool_timeout": settings.database.pool_timeout,
            "pool_recycle": settings.database.pool_recycle,
            "pool_pre_ping": True,
            "connect_args": {"connect_timeout": 10},
        })
    return engine_kwargs


async def init_db(database_url: Optional[str] = None) -> None:
    """
    Initialize database engine and create tables

    Args:
        database_url: Override for settings.database.effective_url (tests)
    """
    global engine, async_session_factory

    if engine is None:
        database_url = database_url or settings.database.effective_url
        engine = create_async_engine(database_url, **_engine_kwargs(database_url))
        async_session_factory = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        logger.info(f"🗄️ Database engine created ({engine.url.get_backend_name()})")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def check_connection() -> bool:
    """Run a trivial query against the database"""
    from sqlalchemy import text

    async with get_db() as db:
        await db.execute(text("SELECT 1"))
    return True


async def close_db() -> None:
    """
    Close database connections
    """
    global engine, async_session_factory
    if engine is not None:
        await engine.dispose()
        engine = None
        async_session_factory = None
