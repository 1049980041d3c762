"""Database connection pooling, session management, and health checks."""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from sqlalchemy import text
from .config import settings
from .logger import logger

# ==================== Connection Pool Setup ====================


def _engine_options(db_url: str) -> dict:
    """Build engine keyword arguments for the configured database driver.

    Pool sizing and asyncpg timeouts only apply to PostgreSQL; SQLite
    (aiosqlite) is used for local runs and tests with driver defaults.
    """
    options = {"echo": False, "future": True}
    if db_url.startswith("sqlite"):
        return options
    options.update(
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_timeout=settings.DB_POOL_TIMEOUT,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,  # Verify connections before use
        connect_args={
            "timeout": settings.DB_CONNECT_TIMEOUT,
            "command_timeout": settings.DB_QUERY_TIMEOUT,
        },
    )
    return options


engine = create_async_engine(settings.DB_URL, **_engine_options(settings.DB_URL))

logger.info(
    f"Database engine configured: pool_size={settings.DB_POOL_SIZE}, "
    f"max_overflow={settings.DB_MAX_OVERFLOW}, timeout={settings.DB_POOL_TIMEOUT}s"
)

# Session factory for creating database sessions
async_session = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

# Base class for ORM models
Base = declarative_base()

# ==================== Health ====================


async def check_db_connection() -> bool:
    """Check if database connection is healthy.

    A single probe, no retries.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database health check failed: {str(e)}")
        return False

# ==================== Cleanup ====================

async def dispose_engine():
    """Gracefully close all database connections.

    Called during application shutdown to properly cleanup connection pool.
    Ensures all connections are closed before application terminates.
    """
    logger.info("Disposing database engine and closing connections")
    try:
        await engine.dispose()
        logger.info("Database connections closed successfully")
    except Exception as e:
        logger.error(f"Error disposing database engine: {str(e)}", exc_info=True)
