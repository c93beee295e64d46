"""
Database Session Management - Async SQLAlchemy engine and session factory.

Engines are built explicitly from settings and handed to the store; there is
no module-level connection state.
"""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from adminops.config import Settings


def create_engine(settings: Settings) -> AsyncEngine:
    """Create the async engine described by ``DATABASE_URL``."""
    if settings.database_url.startswith("sqlite"):
        # SQLite pools reject sizing arguments
        return create_async_engine(
            settings.database_url,
            echo=settings.log_level.upper() == "DEBUG",
        )

    return create_async_engine(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
        pool_timeout=settings.database_pool_timeout,
        pool_recycle=settings.database_pool_recycle,
        pool_pre_ping=True,
        echo=settings.log_level.upper() == "DEBUG",
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to ``engine``."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
