"""
Database Initialization Module

Handles engine creation and schema initialization for the pause session log,
the realtime queue tables and the event stream.
"""

import logging
from typing import Optional
from urllib.parse import urlparse

from sqlalchemy import Engine
from sqlalchemy import event as sa_event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine, text

from callpause.config.settings import Settings, get_settings
from callpause.database.migrations import run_migrations

# Import all SQLModel table classes to ensure they are registered for schema creation
from callpause.models.db_models import Agent, Event, PauseReason, PauseSession, QueueMember  # noqa: F401

logger = logging.getLogger(__name__)


def detect_database_type(database_url: str) -> str:
    """
    Detect database type from connection URL.

    Args:
        database_url: Database connection string

    Returns:
        Database type ('postgresql' or 'sqlite')

    Raises:
        ValueError: For unsupported database schemes
    """
    scheme = urlparse(database_url).scheme.lower()

    if scheme.startswith('postgresql'):
        return 'postgresql'
    elif scheme.startswith('sqlite'):
        return 'sqlite'
    else:
        raise ValueError(f"Unsupported database scheme: {scheme}")


def _enable_sqlite_wal(engine: Engine) -> None:
    """Use WAL so the sync repositories and the async event writer can share a file database."""
    @sa_event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def create_database_engine(database_url: str, settings: Optional[Settings] = None) -> Engine:
    """
    Create database engine with type-specific optimizations.

    Args:
        database_url: Database connection string
        settings: Settings instance (will get default if None)

    Returns:
        SQLAlchemy engine configured for the database type
    """
    if settings is None:
        settings = get_settings()

    if detect_database_type(database_url) == 'postgresql':
        return create_engine(
            database_url,
            echo=False,
            pool_size=settings.postgres_pool_size,
            max_overflow=settings.postgres_max_overflow,
            pool_timeout=settings.postgres_pool_timeout,
            pool_recycle=settings.postgres_pool_recycle,
            pool_pre_ping=settings.postgres_pool_pre_ping,
            connect_args={
                "application_name": "callpause",
                "options": "-c timezone=UTC"
            }
        )

    connect_args = {"check_same_thread": False}

    # In-memory databases must share a single connection across threads
    if database_url.startswith("sqlite:///:memory:"):
        return create_engine(
            database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args=connect_args
        )

    engine = create_engine(database_url, echo=False, connect_args=connect_args)
    _enable_sqlite_wal(engine)
    return engine


def initialize_database() -> bool:
    """
    Initialize the database by applying Alembic migrations.

    Returns:
        True if initialization successful, False if failed
    """
    try:
        settings = get_settings()

        if not settings.database_url:
            logger.error("Database URL not configured")
            return False

        if ":memory:" in settings.database_url:
            # Each engine gets its own in-memory database; DatabaseManager builds the schema
            logger.info("In-memory database: skipping migrations")
            return True

        logger.info("Initializing database with migration system...")
        success = run_migrations(settings.database_url)

        if success:
            logger.info(f"Database initialization completed: {settings.database_url.split('/')[-1]}")
        else:
            logger.error("Database initialization failed")

        return success

    except Exception as e:
        logger.error(f"Database initialization error: {str(e)}", exc_info=True)
        return False


def test_database_connection(database_url: Optional[str] = None) -> bool:
    """
    Test database connectivity.

    Args:
        database_url: Optional database URL, uses settings if not provided

    Returns:
        True if connection successful, False otherwise
    """
    try:
        if not database_url:
            database_url = get_settings().database_url

        engine = create_database_engine(database_url)

        with Session(engine) as session:
            result = session.exec(text("SELECT 1")).first()
            return result[0] == 1

    except Exception as e:
        logger.debug(f"Database connection test failed: {str(e)}")
        return False


def get_database_info() -> dict:
    """
    Get database configuration information.

    Returns:
        Dictionary containing database information
    """
    try:
        settings = get_settings()

        return {
            # Omit DSN to avoid credential leakage
            "database_name": settings.database_url.split('/')[-1],
            "database_type": detect_database_type(settings.database_url),
            "connection_test": test_database_connection(),
        }

    except Exception as e:
        logger.error(f"Failed to get database info: {str(e)}")
        return {
            "connection_test": False,
            "error": str(e)
        }


# Async database engine and session factory (for event system)
_async_engine: Optional[AsyncEngine] = None
_async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def create_async_database_engine(database_url: str, settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Create async database engine for event publishing.

    Args:
        database_url: Database connection string
        settings: Settings instance (will get default if None)

    Returns:
        SQLAlchemy async engine configured for the database type
    """
    if settings is None:
        settings = get_settings()

    if detect_database_type(database_url) == 'postgresql':
        if not database_url.startswith('postgresql+asyncpg://'):
            database_url = database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)

        return create_async_engine(
            database_url,
            echo=False,
            pool_size=settings.postgres_pool_size,
            max_overflow=settings.postgres_max_overflow,
            pool_timeout=settings.postgres_pool_timeout,
            pool_recycle=settings.postgres_pool_recycle,
            pool_pre_ping=settings.postgres_pool_pre_ping,
            connect_args={
                "server_settings": {"application_name": "callpause-events"}
            }
        )

    if not database_url.startswith('sqlite+aiosqlite://'):
        database_url = database_url.replace('sqlite://', 'sqlite+aiosqlite://', 1)

    connect_args = {"check_same_thread": False}

    if ':memory:' in database_url:
        return create_async_engine(
            database_url,
            echo=False,
            poolclass=StaticPool,
            connect_args=connect_args
        )

    engine = create_async_engine(database_url, echo=False, connect_args=connect_args)
    _enable_sqlite_wal(engine.sync_engine)
    return engine


def initialize_async_database(database_url: Optional[str] = None) -> None:
    """
    Initialize async database engine and session factory for event publishing.

    Args:
        database_url: Optional database URL, uses settings if not provided
    """
    global _async_engine, _async_session_factory

    if database_url is None:
        database_url = get_settings().database_url

    _async_engine = create_async_database_engine(database_url)
    _async_session_factory = async_sessionmaker(
        _async_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )

    logger.info(f"Async database engine initialized for: {database_url.split('/')[-1]}")


def get_async_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get async session factory for event publishing.

    Raises:
        RuntimeError: If async database not initialized
    """
    if _async_session_factory is None:
        raise RuntimeError("Async database not initialized. Call initialize_async_database() first.")
    return _async_session_factory


async def dispose_async_database() -> None:
    """Dispose async database engine and cleanup resources."""
    global _async_engine, _async_session_factory

    if _async_engine:
        await _async_engine.dispose()
        logger.info("Async database engine disposed")

    _async_engine = None
    _async_session_factory = None
