"""
Database Infrastructure
=======================

Engine and session lifecycle for the SQL reference stores.

Uses SQLAlchemy 2.0 async. PostgreSQL (asyncpg) is the production target;
SQLite (aiosqlite) works for local runs and tests. The stores themselves
take an ``async_sessionmaker`` so hosts can bring their own engine.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from feedback_core.config import settings


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    SQLAlchemy 2.0 style using DeclarativeBase.
    """
    pass


# Global engine and session maker
_engine: AsyncEngine | None = None
_session_maker: async_sessionmaker[AsyncSession] | None = None


def get_engine() -> AsyncEngine:
    """
    Get the initialized database engine.

    Raises:
        RuntimeError: If engine has not been initialized
    """
    if _engine is None:
        raise RuntimeError("Database engine not initialized. Call init_database() first.")
    return _engine


def get_session_maker() -> async_sessionmaker[AsyncSession]:
    """Session factory handed to the SQL stores."""
    if _session_maker is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_maker


def init_database(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Initialize the database engine and session maker.

    Args:
        database_url: Overrides ``settings.database_url``

    Returns:
        AsyncEngine: The initialized engine
    """
    global _engine, _session_maker

    url = database_url or settings.database_url
    engine_kwargs = {"echo": settings.debug, "pool_pre_ping": True}

    if url.startswith("postgresql"):
        # asyncpg expects ssl=, not sslmode=
        url = url.replace("sslmode=", "ssl=")
        engine_kwargs["pool_size"] = settings.db_pool_size
        engine_kwargs["max_overflow"] = settings.db_max_overflow

    _engine = create_async_engine(url, **engine_kwargs)
    _session_maker = async_sessionmaker(
        bind=_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _engine


async def close_database() -> None:
    """Dispose of the engine's connections."""
    global _engine, _session_maker

    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _session_maker = None


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """
    Create all store tables.

    Intended for development and tests; production schemas belong to the
    host's migrations.
    """
    # Register models on Base.metadata
    from feedback_core.admission.infrastructure import models as _admission_models  # noqa: F401
    from feedback_core.alerting.infrastructure import models as _alerting_models  # noqa: F401

    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
