"""Database engine and async session factory for the counter tables."""

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from brick_counter.config import settings
from brick_counter.models.counter import Base

engine = create_async_engine(settings.database_url, echo=settings.debug)

async_session_factory = async_sessionmaker(engine, expire_on_commit=False)


async def init_db() -> None:
    """Create the counter tables if they don't yet exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Release pooled connections on shutdown."""
    await engine.dispose()
