"""
Database Configuration and Session Management
============================================

This module provides the async database engine, session factory, and table
creation functionality for the Order Desk.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from config import Config
from models import Base

logger = logging.getLogger(__name__)


def to_async_database_url(url: str) -> str:
    """Convert a plain database URL to its async driver form"""
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql://", 1)
    if url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
        # asyncpg uses 'ssl' instead of 'sslmode' parameter
        url = url.replace("sslmode=require", "ssl=require")
        url = url.replace("sslmode=prefer", "ssl=prefer")
        url = url.replace("sslmode=disable", "ssl=disable")
    elif url.startswith("sqlite://") and "+aiosqlite" not in url:
        url = url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def engine_options(async_url: str) -> Dict[str, Any]:
    """Pool and timeout settings for the given driver"""
    if async_url.startswith("postgresql+asyncpg"):
        return {
            "pool_size": Config.DB_POOL_SIZE,
            "max_overflow": Config.DB_MAX_OVERFLOW,
            "pool_pre_ping": True,
            "pool_recycle": 3600,
            "pool_timeout": 30,
            "connect_args": {
                "server_settings": {"application_name": "order_desk_bot"},
                "timeout": 10,
                "command_timeout": Config.DB_COMMAND_TIMEOUT,
            },
        }
    if async_url.startswith("sqlite+aiosqlite"):
        return {"connect_args": {"timeout": Config.DB_COMMAND_TIMEOUT}}
    return {}


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    async_url = to_async_database_url(url)
    return create_async_engine(async_url, echo=echo, **engine_options(async_url))


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        autoflush=False,
        expire_on_commit=False,  # Orders are handed to background notification tasks after commit
    )


async_engine = build_engine(Config.DATABASE_URL)
AsyncSessionLocal = build_session_factory(async_engine)


@asynccontextmanager
async def get_async_session(session_factory: Optional[async_sessionmaker] = None):
    """
    Async context manager for one unit of work.

    Commits when the block exits normally and rolls back on any exception.

    Usage:
        async with get_async_session() as session:
            result = await session.execute(select(Order).where(...))
            order = result.scalar_one_or_none()
    """
    factory = session_factory or AsyncSessionLocal
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def create_tables(engine: Optional[AsyncEngine] = None) -> bool:
    """Create all database tables if they don't exist"""
    target = engine or async_engine
    try:
        logger.info("🏗️ Creating database tables (if they don't exist)...")
        async with target.begin() as connection:
            await connection.run_sync(Base.metadata.create_all)
        logger.info("✅ Database tables ready")
        return True
    except Exception as e:
        logger.error(f"❌ Error creating tables: {e}")
        return False


async def test_connection(engine: Optional[AsyncEngine] = None) -> bool:
    """Test database connectivity"""
    target = engine or async_engine
    try:
        async with target.connect() as connection:
            await connection.execute(text("SELECT 1"))
        logger.info("✅ Database connection test successful")
        return True
    except Exception as e:
        logger.error(f"❌ Database connection test failed: {e}")
        return False


async def dispose_engine(engine: Optional[AsyncEngine] = None) -> None:
    await (engine or async_engine).dispose()
