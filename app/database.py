"""Database configuration and session management for the short link service.

This module provides SQLAlchemy async engine setup, session management,
and database lifecycle operations. PostgreSQL (asyncpg) is the production
backend; any SQLAlchemy async URL works, SQLite (aiosqlite) is used in tests.

Flow Diagram — Database Operations
=================================
::
    ┌─────────────┐
    │  Application│
    │  Request    │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ get_db()     │
    │ dependency  │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Create async │
    │ session     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Yield to     │
    │ request     │
    │ handler     │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ Auto-close   │
    │ (finally)    │
    └─────────────┘

Key Behaviours
===============
- Async sessions are automatically closed after each request.
- Pool checkout is bounded by DATABASE_POOL_TIMEOUT_SECONDS.
- Tables are created automatically on application startup.
- Engine is properly disposed on application shutdown.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    get_db():  FastAPI dependency for database sessions.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from app.config import Settings, get_settings

__all__ = ["Base", "build_engine", "async_session", "engine", "get_db", "init_db", "close_db"]

settings = get_settings()


def build_engine(config: Settings) -> AsyncEngine:
    options: dict[str, Any] = {"echo": False, "pool_pre_ping": True}
    if not config.DATABASE_URL.startswith("sqlite"):
        options.update(
            pool_size=config.DATABASE_POOL_SIZE,
            max_overflow=10,
            pool_timeout=config.DATABASE_POOL_TIMEOUT_SECONDS,
        )
    return create_async_engine(config.DATABASE_URL, **options)


engine = build_engine(settings)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db() -> None:
    # Model registration happens on import.
    import app.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
