"""
Database connection and session management.

Provides async SQLAlchemy engine and session factory. PostgreSQL (asyncpg)
is used in production, SQLite (aiosqlite) for local development and tests.
"""

import logging
from typing import AsyncGenerator, Optional, Dict, Any
from contextlib import asynccontextmanager

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import NullPool, QueuePool

from ..config import settings
from .exceptions import BackendError, OpsDeskError
from .models import Base

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Map plain postgres/sqlite URLs onto their async drivers."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class Database:
    """Database connection manager."""

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False

    @property
    def is_sqlite(self) -> bool:
        return bool(self.engine) and self.engine.dialect.name == "sqlite"

    async def initialize(self) -> bool:
        """Initialize database connection and create tables."""
        if self._initialized:
            return True

        database_url = self.database_url or settings.database_url
        if not database_url:
            logger.warning("DATABASE_URL not configured")
            return False

        try:
            database_url = normalize_database_url(database_url)
            is_sqlite = database_url.startswith("sqlite")

            # NullPool for tests and SQLite, QueuePool for production
            if settings.environment == "test" or is_sqlite:
                pool_config: Dict[str, Any] = {"poolclass": NullPool}
                logger.info("Using NullPool for database connections")
            else:
                pool_config = {
                    "poolclass": QueuePool,
                    "pool_size": settings.db_pool_size,
                    "max_overflow": settings.db_max_overflow,
                    "pool_timeout": settings.db_pool_timeout,
                    "pool_recycle": settings.db_pool_recycle,
                    "pool_pre_ping": True,
                }
                logger.info(
                    f"Database pool config: size={settings.db_pool_size}, "
                    f"max_overflow={settings.db_max_overflow}, "
                    f"timeout={settings.db_pool_timeout}s"
                )

            connect_args: Dict[str, Any] = {}
            if database_url.startswith("postgresql+asyncpg"):
                connect_args = {
                    "server_settings": {
                        "application_name": "opsdesk",
                        "jit": "off",
                    }
                }

            self.engine = create_async_engine(
                database_url,
                echo=settings.database_echo,
                connect_args=connect_args,
                **pool_config,
            )

            if is_sqlite:
                # SQLite ignores FOREIGN KEY clauses unless asked
                @event.listens_for(self.engine.sync_engine, "connect")
                def _enable_sqlite_fks(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    cursor.execute("PRAGMA foreign_keys=ON")
                    cursor.close()

            self.session_factory = async_sessionmaker(
                bind=self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            self._initialized = True
            logger.info("Database initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Database initialization failed: {e}", exc_info=True)
            return False

    async def close(self):
        """Close database connection."""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session, committed on success and rolled back on error."""
        if not self._initialized:
            await self.initialize()

        if not self.session_factory:
            raise BackendError("Database not initialized")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                if isinstance(e, OpsDeskError):
                    logger.debug(f"Session rolled back: {e}")
                else:
                    logger.error(f"Database session error: {e}")
                raise

    async def health_check(self) -> dict:
        """Perform health check on database."""
        try:
            if not self._initialized:
                await self.initialize()

            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "initialized": self._initialized,
                "dialect": self.engine.dialect.name if self.engine else None,
            }
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "initialized": self._initialized,
            }


# Singleton instance
_database: Optional[Database] = None


def get_database() -> Database:
    """Get the database singleton."""
    global _database
    if _database is None:
        _database = Database()
    return _database
