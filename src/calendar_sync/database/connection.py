"""Database connection management.

Provides async database connection using SQLAlchemy with asyncpg.

## Configuration

Database connection is configured via environment variables:
- DATABASE_URL: Full PostgreSQL connection string
- DATABASE_POOL_SIZE: Connection pool size (default: 5)
- DATABASE_MAX_OVERFLOW: Max overflow connections (default: 10)

SQLite URLs (`sqlite+aiosqlite://`) are accepted for local development and
tests; they use a single shared connection instead of a pool.

## Usage

```python
from calendar_sync.database import get_db, init_db

# Initialize on startup
await init_db()

# Use in request handlers
async with get_db() as session:
    account = await session.get(LinkedAccount, account_id)
```
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from calendar_sync.config import get_settings
from calendar_sync.database.models import Base

logger = logging.getLogger(__name__)

# Global engine and session factory
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _engine_options(url: str) -> dict[str, Any]:
    settings = get_settings()
    if url.startswith("sqlite"):
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
            "echo": settings.database_echo,
        }
    return {
        "pool_size": settings.database_pool_size,
        "max_overflow": settings.database_max_overflow,
        "pool_pre_ping": True,  # Verify connections before use
        "echo": settings.database_echo,  # Log SQL in debug mode
    }


async def init_db(database_url: str | None = None) -> None:
    """Initialize the database connection.

    Creates the async engine and session factory. Should be called
    once on application startup.

    Args:
        database_url: Override for DATABASE_URL (tests)
    """
    global _engine, _session_factory

    url = database_url or get_settings().database_url

    logger.info("Initializing database connection")

    _engine = create_async_engine(url, **_engine_options(url))
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Database connection initialized")


async def close_db() -> None:
    """Close the database connection.

    Should be called on application shutdown.
    """
    global _engine, _session_factory

    if _engine:
        logger.info("Closing database connection")
        await _engine.dispose()
        _engine = None
        _session_factory = None


async def create_tables() -> None:
    """Create all database tables.

    For development/testing only. Use migrations in production.
    """
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")

    async with _engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    logger.info("Database tables created")


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory for services that open their own sessions."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _session_factory


@asynccontextmanager
async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session.

    Use as an async context manager:
    ```python
    async with get_db() as session:
        # Use session
        await session.commit()
    ```

    The session is automatically closed when the context exits.
    Transactions are not automatically committed - call commit() explicitly.
    """
    session = get_session_factory()()
    try:
        yield session
    except Exception:
        await session.rollback()
        raise
    finally:
        await session.close()


# Type alias for dependency injection
DatabaseSession = AsyncSession


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with get_db() as session:
        yield session
