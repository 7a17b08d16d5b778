"""Database connection and session management."""

from typing import AsyncGenerator, Optional

from app.config import settings
from app.models.base import Base
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

engine: Optional[AsyncEngine] = None
async_session_maker: Optional[async_sessionmaker] = None


async def init_db(database_url: Optional[str] = None) -> async_sessionmaker:
    """Initialize database engine and create tables."""
    global engine, async_session_maker

    url = database_url or settings.DATABASE_URL
    engine_kwargs = {"echo": settings.DEBUG, "future": True}
    if not url.startswith("sqlite"):
        engine_kwargs["pool_pre_ping"] = True

    engine = create_async_engine(url, **engine_kwargs)

    async_session_maker = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    # Create tables if they don't exist
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    return async_session_maker


async def close_db():
    """Close database engine."""
    global engine, async_session_maker
    if engine:
        await engine.dispose()
    engine = None
    async_session_maker = None


def get_session_maker() -> async_sessionmaker:
    """Return the active session factory."""
    if async_session_maker is None:
        raise RuntimeError("Database not initialized; call init_db() first")
    return async_session_maker


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session."""
    async with get_session_maker()() as session:
        yield session
