"""
Database connection and session management
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import NullPool, StaticPool

from inteligencia.config import get_settings
from inteligencia.models import Base

# Lazy initialization for serverless environments
_engine = None
_async_session_maker = None
_sync_engine = None
_sync_session_maker = None


def _get_database_url() -> str:
    """Get and convert database URL for async"""
    settings = get_settings()
    database_url = settings.DATABASE_URL
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return database_url


def _get_sync_database_url() -> str:
    """Database URL for the sync drivers used by scripts"""
    database_url = get_settings().DATABASE_URL
    database_url = database_url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)


def _is_serverless() -> bool:
    """Check if running in serverless environment"""
    return bool(os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME"))


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _get_engine():
    """Lazy engine initialization"""
    global _engine
    if _engine is None:
        settings = get_settings()
        database_url = _get_database_url()

        engine_kwargs = {"echo": settings.DEBUG}

        if _is_sqlite(database_url):
            # Single shared connection so in-memory databases survive across sessions
            engine_kwargs["poolclass"] = StaticPool
            engine_kwargs["connect_args"] = {"check_same_thread": False}
        elif _is_serverless():
            engine_kwargs["poolclass"] = NullPool
            engine_kwargs["pool_pre_ping"] = True
        else:
            engine_kwargs["pool_pre_ping"] = True
            engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
            engine_kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW

        _engine = create_async_engine(database_url, **engine_kwargs)
    return _engine


def _get_session_maker():
    """Lazy session maker initialization"""
    global _async_session_maker
    if _async_session_maker is None:
        _async_session_maker = async_sessionmaker(
            _get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False,
        )
    return _async_session_maker


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Context manager for database session (workers, streaming responses, scripts)"""
    session_maker = _get_session_maker()
    async with session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency: one unit of work per request"""
    async with get_db_context() as session:
        yield session


async def init_db():
    """Initialize database tables"""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db():
    """Drop all tables (test teardown)"""
    engine = _get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def close_db():
    """Close database connections"""
    global _engine, _async_session_maker
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_maker = None


# For scripts (sync context) - also lazy loaded

def _get_sync_engine():
    """Lazy sync engine initialization"""
    global _sync_engine
    if _sync_engine is None:
        settings = get_settings()
        database_url = _get_sync_database_url()
        engine_kwargs = {"pool_pre_ping": True}
        if not _is_sqlite(database_url):
            engine_kwargs["pool_size"] = settings.DATABASE_POOL_SIZE
            engine_kwargs["max_overflow"] = settings.DATABASE_MAX_OVERFLOW
        _sync_engine = create_engine(database_url, **engine_kwargs)
    return _sync_engine


def _get_sync_session_maker():
    """Lazy sync session maker initialization"""
    global _sync_session_maker
    if _sync_session_maker is None:
        _sync_session_maker = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=_get_sync_engine(),
        )
    return _sync_session_maker


def get_sync_db() -> Session:
    """Get synchronous database session for scripts"""
    return _get_sync_session_maker()()
