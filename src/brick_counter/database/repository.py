"""Counter repository — data access layer for the persisted brick count."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from brick_counter.errors import PersistenceError
from brick_counter.models.counter import COUNTER_ROW_ID, Counter, CounterLogEntry

logger = logging.getLogger(__name__)


class CounterRepository:
    """Encapsulates all database queries related to the counter.

    Every public method opens its own short-lived session, so a repository
    instance can be shared by concurrent requests and background tasks.
    Database failures surface as :class:`PersistenceError`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self, operation: str) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error("Counter %s failed: %s", operation, exc)
                raise PersistenceError(f"counter {operation} failed") from exc

    async def read(self) -> int:
        """Return the persisted count, ``0`` when nothing was stored yet."""
        async with self._session("read") as session:
            value = await session.scalar(
                select(Counter.count).where(Counter.id == COUNTER_ROW_ID)
            )
        return value or 0

    async def atomic_increment(self, delta: int) -> int:
        """Add *delta* in a single ``UPDATE`` and return the new count.

        The increment is computed by the database (``count = count + delta``),
        so concurrent callers never lose updates even without the in-process
        write queue. When the row is missing it is inserted; if another writer
        inserts it first, the ``UPDATE`` is applied to their row instead.
        """
        async with self._session("increment") as session:
            if not await self._add_to_row(session, delta):
                try:
                    session.add(Counter(id=COUNTER_ROW_ID, count=delta))
                    await session.flush()
                except IntegrityError:
                    await session.rollback()
                    if not await self._add_to_row(session, delta):
                        raise PersistenceError("counter row vanished during increment")
            value = await session.scalar(
                select(Counter.count).where(Counter.id == COUNTER_ROW_ID)
            )
            await session.commit()
        return value

    @staticmethod
    async def _add_to_row(session: AsyncSession, delta: int) -> bool:
        result = await session.execute(
            update(Counter)
            .where(Counter.id == COUNTER_ROW_ID)
            .values(count=Counter.count + delta)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def overwrite(self, value: int) -> int:
        """Replace the persisted count with *value*."""
        async with self._session("overwrite") as session:
            counter = await session.get(Counter, COUNTER_ROW_ID)
            if counter is None:
                session.add(Counter(id=COUNTER_ROW_ID, count=value))
            else:
                counter.count = value
            await session.commit()
        return value

    async def append_log_entry(self, timestamp: datetime, value: int) -> None:
        """Record a history snapshot of the counter."""
        async with self._session("log") as session:
            session.add(CounterLogEntry(logged_at=timestamp, value=value))
            await session.commit()

    async def recent_log_entries(self, limit: int = 20) -> list[CounterLogEntry]:
        """Return the newest history snapshots first."""
        async with self._session("history") as session:
            result = await session.execute(
                select(CounterLogEntry)
                .order_by(CounterLogEntry.logged_at.desc(), CounterLogEntry.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
