"""
Database connection and session management with connection pooling.

Provides the async SQLAlchemy engine and session factory that every
repository receives at construction. The handle is opened once at process
start (init_database) and disposed at shutdown (close_database).
"""

import logging
from typing import AsyncGenerator, Optional, Dict, Any
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.pool import AsyncAdaptedQueuePool, NullPool

from config import settings
from .models import Base
from .exceptions import DatabaseConnectionError

logger = logging.getLogger(__name__)


def normalize_database_url(database_url: str) -> str:
    """Convert postgres:// and postgresql:// URLs to the asyncpg driver form."""
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


class Database:
    """Database connection manager."""

    def __init__(self, database_url: Optional[str] = None, environment: Optional[str] = None):
        self.database_url = database_url if database_url is not None else settings.database_url
        self.environment = environment or settings.environment
        self.engine: Optional[AsyncEngine] = None
        self.session_factory: Optional[async_sessionmaker[AsyncSession]] = None
        self._initialized = False

    def _engine_options(self, url: str) -> Dict[str, Any]:
        # NullPool for tests and SQLite so connections never outlive a unit of work
        if self.environment == "test" or url.startswith("sqlite"):
            logger.info("Using NullPool for database engine")
            return {"poolclass": NullPool}

        logger.info(
            f"Database pool config: size={settings.db_pool_size}, "
            f"max_overflow={settings.db_max_overflow}, "
            f"timeout={settings.db_pool_timeout}s"
        )
        return {
            "poolclass": AsyncAdaptedQueuePool,
            "pool_size": settings.db_pool_size,
            "max_overflow": settings.db_max_overflow,
            "pool_timeout": settings.db_pool_timeout,
            "pool_recycle": settings.db_pool_recycle,
            "pool_pre_ping": True,
            "connect_args": {
                "server_settings": {
                    "application_name": "streamdesk",
                    "jit": "off",
                }
            },
        }

    async def initialize(self) -> bool:
        """Initialize database connection and create tables."""
        if self._initialized:
            return True

        if not self.database_url:
            logger.warning("DATABASE_URL not configured")
            return False

        url = normalize_database_url(self.database_url)

        try:
            self.engine = create_async_engine(
                url,
                echo=settings.database_echo,
                **self._engine_options(url),
            )

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

        except (SQLAlchemyError, OSError) as e:
            logger.error(f"Database initialization failed: {e}")
            return False

    async def close(self):
        """Close database connection."""
        if self.engine:
            await self.engine.dispose()
            self._initialized = False
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get a database session scoped to one unit of work.

        Commits when the block exits normally and rolls back when it raises,
        so every write inside one block is applied atomically.
        """
        if not self._initialized:
            await self.initialize()

        if not self.session_factory:
            raise DatabaseConnectionError("Database not initialized")

        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception as e:
                await session.rollback()
                logger.error(f"Database session error: {e}")
                raise

    async def health_check(self) -> dict:
        """Perform health check on database."""
        try:
            async with self.session() as session:
                result = await session.execute(text("SELECT 1"))
                result.scalar()

            return {
                "status": "healthy",
                "initialized": self._initialized,
                "pool": self.get_pool_status(),
            }
        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
            }

    def get_pool_status(self) -> Dict[str, Any]:
        """Get connection pool status for monitoring."""
        if not self.engine:
            return {"status": "not_initialized"}

        pool = self.engine.pool
        if isinstance(pool, NullPool):
            return {"pool_type": "NullPool", "status": "no_pooling"}

        return {
            "pool_type": type(pool).__name__,
            "size": pool.size(),
            "checked_in": pool.checkedin(),
            "checked_out": pool.checkedout(),
            "overflow": pool.overflow(),
        }


# Process-wide handle, owned by the application lifespan
_database: Optional[Database] = None


def get_database() -> Database:
    """Get the process database handle."""
    global _database
    if _database is None:
        _database = Database()
    return _database


async def init_database(database: Optional[Database] = None) -> bool:
    """Open the database handle (optionally installing a pre-built one)."""
    global _database
    if database is not None:
        _database = database
    db = get_database()
    return await db.initialize()


async def close_database():
    """Close the database connection."""
    global _database
    if _database:
        await _database.close()
        _database = None
