"""Database connection and session management."""

import logging
from pathlib import Path
from typing import Any, Dict

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import settings

logger = logging.getLogger(__name__)

# Base class for models
Base = declarative_base()


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Create an async engine, choosing the async driver from the URL scheme."""
    engine_kwargs: Dict[str, Any] = {'echo': settings.development and settings.log_level.upper() == 'DEBUG'}

    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://")
    elif database_url.startswith("sqlite:///"):
        database_url = database_url.replace("sqlite:///", "sqlite+aiosqlite:///")

    if database_url.startswith("sqlite"):
        # SQLite serializes writers; a short busy timeout avoids spurious "database is locked"
        engine_kwargs['connect_args'] = {'timeout': 30}
    else:
        engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True, pool_recycle=300)

    engine_kwargs.update(kwargs)
    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(bind=bind, class_=AsyncSession, expire_on_commit=False, autoflush=True)


engine = build_engine(settings.get_database_url())
AsyncSessionLocal = build_session_factory(engine)


async def init_db(bind: AsyncEngine = None):
    """Create all tables for the registered models."""
    bind = bind or engine

    # Import all models to ensure they're registered
    from . import models  # noqa

    database = bind.url.database
    if bind.url.get_backend_name() == 'sqlite' and database and database != ':memory:':
        Path(database).parent.mkdir(parents=True, exist_ok=True)

    try:
        async with bind.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
            await conn.execute(text("SELECT 1"))
        logger.info("Database initialized at %s", bind.url.render_as_string(hide_password=True))
    except Exception as init_error:
        logger.error(f"Database initialization failed: {init_error}")
        raise RuntimeError(f"Database initialization failed: {init_error}") from init_error


async def close_db_engine(bind: AsyncEngine = None):
    """Dispose of the engine and all pooled connections."""
    await (bind or engine).dispose()
    logger.debug("Database engine disposed")
