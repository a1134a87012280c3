"""Persistent store handle: the single shared database connection pool.

One ``StoreHandle`` is created at process start, before the listener binds,
and handed to every handler group when the route registry is mounted.
Handlers borrow it (sessions, connectivity checks); only the lifecycle
manager closes it, exactly once, during shutdown.

Core functionality:
- **Connection pooling**: Configurable pool with overflow and recycling
- **Session factory**: Async sessions committed on success, rolled back on error
- **Health checks**: Database connectivity validation for diagnostics
- **Idempotent close**: Concurrent or repeated close calls dispose the engine once
"""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from loguru import logger
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from health_gateway.core.config import DatabaseConfig
from health_gateway.infrastructure.constants import (
    COMMAND_TIMEOUT_SECONDS,
    POOL_RECYCLE_SECONDS,
)


def create_database_engine(db_config: DatabaseConfig) -> AsyncEngine:
    """Create an async SQLAlchemy engine with connection pooling.

    No connection is opened here; the pool connects lazily on first use.

    Args:
        db_config: Database configuration.

    Returns:
        AsyncEngine: Configured async engine instance.
    """
    engine = create_async_engine(
        db_config.database_url,
        pool_size=db_config.pool_size,
        max_overflow=db_config.max_overflow,
        pool_timeout=db_config.pool_timeout,
        pool_pre_ping=db_config.pool_pre_ping,
        echo=db_config.echo,
        pool_recycle=POOL_RECYCLE_SECONDS,
        connect_args={"command_timeout": COMMAND_TIMEOUT_SECONDS},
    )

    logger.info(
        "Created database engine - pool_size: {}, max_overflow: {}",
        db_config.pool_size,
        db_config.max_overflow,
    )

    return engine


class StoreHandle:
    """Shared handle on the backing database.

    Args:
        engine: The async engine owning the connection pool.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )
        self._close_task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(cls, db_config: DatabaseConfig) -> "StoreHandle":
        """Build a handle and its engine from configuration."""
        return cls(create_database_engine(db_config))

    @property
    def engine(self) -> AsyncEngine:
        """The underlying async engine."""
        return self._engine

    @property
    def closed(self) -> bool:
        """Whether close() has been requested."""
        return self._close_task is not None

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Get an async database session with automatic cleanup.

        The session is committed on success or rolled back on error.

        Yields:
            AsyncSession: Database session for performing operations.

        Raises:
            RuntimeError: If the handle has already been closed.
        """
        if self.closed:
            msg = "Store handle is closed"
            raise RuntimeError(msg)

        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                logger.debug("Database session rolled back due to error")
                raise

    async def ping(self) -> tuple[bool, str | None]:
        """Check if the database is reachable.

        Returns:
            tuple[bool, str | None]: Reachability flag and the error message
                when unreachable.
        """
        if self.closed:
            return False, "Store handle is closed"
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(text("SELECT 1"))
                _ = result.scalar()
        except (SQLAlchemyError, OSError) as e:
            return False, str(e)
        else:
            return True, None

    async def close(self) -> None:
        """Dispose the engine and its pooled connections.

        Safe to call more than once or concurrently: every caller awaits the
        same disposal, which runs exactly once.
        """
        if self._close_task is None:
            self._close_task = asyncio.ensure_future(self._dispose())
        await asyncio.shield(self._close_task)

    async def _dispose(self) -> None:
        await self._engine.dispose()
        logger.info("Database engine disposed")
