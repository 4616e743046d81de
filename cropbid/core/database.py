from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from cropbid.core.config import settings


def engine_options(url: str) -> dict[str, Any]:
    """Pool and driver options for the given database URL"""
    if url.startswith("sqlite"):
        # SQLite serializes writers itself; keep the driver defaults
        return {"connect_args": {"timeout": 30}}

    return {
        "pool_size": 20,
        "max_overflow": 30,
        "pool_recycle": 120,  # Aggressive recycling to prevent leaks
        "pool_timeout": 10,  # Fail fast if pool exhausted
        "pool_pre_ping": True,
        "pool_use_lifo": True,
        "connect_args": {
            "server_settings": {
                "timezone": "UTC",  # Force PostgreSQL to use UTC timezone
                "application_name": "crop_bidding",
            },
            "command_timeout": 30,
            "timeout": 15,  # Connection establishment timeout
        },
    }


def build_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False, **engine_options(url))


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)

# Create non-blocking session factory
AsyncSessionLocal = build_session_factory(engine)


class Base(DeclarativeBase):
    """All ORM models base class"""

    pass


async def create_all(bind: AsyncEngine) -> None:
    """Create all tables on the given engine"""
    async with bind.begin() as conn:
        # Import all models to ensure they are registered
        from cropbid.models import BiddingSession, CropLot  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)


async def init_db() -> None:
    """Initialize database, create all tables"""
    await create_all(engine)


async def close_db() -> None:
    """Close database connection"""
    await engine.dispose()
