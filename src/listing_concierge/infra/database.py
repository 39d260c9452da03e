"""Async engine and session factory for tenants, feedback and the audit log."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from listing_concierge.app.config import get_settings


class Base(DeclarativeBase):
    """Declarative base for the concierge tables."""
    pass


def _engine_options(database_url: str) -> dict:
    if "sqlite" in database_url:
        # Chat turns append audit rows concurrently; wait for the write lock.
        return {"echo": False, "connect_args": {"check_same_thread": False, "timeout": 30}}
    return {"echo": False, "pool_size": 5, "max_overflow": 10}


settings = get_settings()

engine = create_async_engine(settings.database_url, **_engine_options(settings.database_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db():
    """Create the concierge tables if missing."""
    import listing_concierge.domain.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    if engine.dialect.name == "sqlite":
        async with engine.begin() as conn:
            await conn.execute(text("PRAGMA journal_mode=WAL"))
