"""Seed script — sets the persisted counter to a starting value."""

import asyncio
import sys

from brick_counter.database.engine import async_session_factory, close_db, init_db
from brick_counter.database.repository import CounterRepository


async def seed(value: int) -> None:
    """Create the tables and overwrite the counter with *value*."""
    await init_db()
    repository = CounterRepository(async_session_factory)
    await repository.overwrite(value)
    await close_db()
    print(f"✅ Counter set to {value} bricks.")


if __name__ == "__main__":
    asyncio.run(seed(int(sys.argv[1]) if len(sys.argv) > 1 else 0))
