"""
Database Configuration and Session Management
Uses SQLAlchemy with async support
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from engagement_core.app.config import get_config
from engagement_core.app.models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """
    Owns the async engine and session factory

    Usage:
        async with db_manager.session() as session:
            async with session.begin():
                ...
    """

    def __init__(self, url: Optional[str] = None, echo: Optional[bool] = None):
        self._url = url
        self._echo = echo
        self._engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker[AsyncSession]] = None

    @property
    def engine(self) -> AsyncEngine:
        """Create engine lazily from configuration"""
        if self._engine is None:
            config = get_config()
            url = self._url or config.database.url
            echo = config.database.echo if self._echo is None else self._echo

            kwargs = {"echo": echo}
            if url.startswith("sqlite"):
                if ":memory:" in url:
                    kwargs["poolclass"] = StaticPool
                kwargs["connect_args"] = {"check_same_thread": False}
            else:
                kwargs["pool_size"] = config.database.pool_size
                kwargs["max_overflow"] = config.database.max_overflow

            self._engine = create_async_engine(url, **kwargs)
            logger.info(f"🗄️ Database engine created: {url.split('/')[-1]}")
        return self._engine

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        """Session factory bound to the engine"""
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine, class_=AsyncSession, expire_on_commit=False
            )
        return self._session_factory

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Yield a session and always close it"""
        session = self.session_factory()
        try:
            yield session
        finally:
            await session.close()

    async def create_tables(self) -> None:
        """
        Initialize database tables
        Creates all tables defined by models
        """
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("✅ Database tables created successfully")
        except Exception as e:
            logger.error(f"❌ Failed to create database tables: {e}")
            raise

    async def drop_tables(self) -> None:
        """
        Drop all tables (use with caution!)
        Only use in development/testing
        """
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        logger.warning("⚠️  All tables dropped")

    async def close(self) -> None:
        """Dispose the engine and its pooled connections"""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
            logger.info("🔌 Database connections closed")


db_manager = DatabaseManager()


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting database session

    Usage in FastAPI:
        @app.get("/users/{uid}")
        async def get_user(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with db_manager.session() as session:
        yield session
