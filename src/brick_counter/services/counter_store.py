"""Counter store — cached reads and strictly serialized writes.

All mutations go through one FIFO queue drained by a single worker task, so
two concurrent increments can never interleave against the persistence layer.
Reads are served from a short-lived cache and fall back to the last known
value when the database cannot be reached.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Protocol

from brick_counter.errors import PersistenceError

logger = logging.getLogger(__name__)


class CounterBackend(Protocol):
    """Persistence operations the store relies on."""

    async def read(self) -> int: ...

    async def atomic_increment(self, delta: int) -> int: ...

    async def overwrite(self, value: int) -> int: ...


@dataclass
class _WriteJob:
    name: str
    call: Callable[[], Awaitable[int]]
    future: asyncio.Future[int]


# Queue sentinel telling the worker to exit.
_STOP = object()


class CounterStore:
    """In-process façade over a :class:`CounterBackend`.

    Lifecycle: create at startup, :meth:`start` the worker (or let the first
    write start it), :meth:`stop` at shutdown. ``stop`` lets every write that
    was already queued finish before the worker exits.
    """

    def __init__(
        self,
        backend: CounterBackend,
        ttl_seconds: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._backend = backend
        self._ttl = ttl_seconds
        self._clock = clock
        self._value = 0
        self._expires_at: float | None = None
        # Bumped by every successful write; lets a slow refresh detect that
        # it has been overtaken.
        self._version = 0
        self._queue: asyncio.Queue[_WriteJob | object] = asyncio.Queue()
        self._worker: asyncio.Task[None] | None = None
        self._refresh: asyncio.Task[int] | None = None
        self._closed = False

    # ── Lifecycle ────────────────────────────────────────

    def start(self) -> None:
        """Start the write worker on the running event loop."""
        if self._closed:
            raise PersistenceError("counter store is closed")
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._drain(), name="counter-store-writer"
            )

    async def stop(self) -> None:
        """Finish queued writes, then stop the worker."""
        self._closed = True
        if self._worker is None:
            return
        await self._queue.put(_STOP)
        await self._worker
        self._worker = None

    # ── Reads ────────────────────────────────────────────

    @property
    def cached_value(self) -> int:
        """Last value seen from the backend, regardless of freshness."""
        return self._value

    async def read(self) -> int:
        """Return the counter, refreshing the cache once it has expired.

        Concurrent readers of an expired cache share one backend read. Never
        raises :class:`PersistenceError`: when the refresh fails the last
        cached value (possibly stale, ``0`` before any load) is returned.
        """
        now = self._clock()
        if self._expires_at is not None and now < self._expires_at:
            return self._value

        if self._refresh is None:
            self._refresh = asyncio.get_running_loop().create_task(
                self._load(), name="counter-store-refresh"
            )
        # A reader that goes away does not cancel the shared refresh.
        return await asyncio.shield(self._refresh)

    async def _load(self) -> int:
        version = self._version
        try:
            value = await self._backend.read()
        except PersistenceError as exc:
            logger.warning("Counter refresh failed, serving cached value %s: %s", self._value, exc)
            return self._value
        finally:
            self._refresh = None

        if version == self._version:
            self._remember(value)
            return value
        # A write finished while we were reading; its value is newer.
        return self._value

    # ── Writes ───────────────────────────────────────────

    async def increment(self, delta: int) -> int:
        """Add *delta* (a positive int) and return the new authoritative count."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta < 1:
            raise ValueError(f"delta must be a positive integer, got {delta!r}")
        return await self._submit("increment", lambda: self._backend.atomic_increment(delta))

    async def set(self, value: int) -> int:
        """Overwrite the counter with *value* (administrative)."""
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValueError(f"value must be a non-negative integer, got {value!r}")
        return await self._submit("set", lambda: self._backend.overwrite(value))

    async def _submit(self, name: str, call: Callable[[], Awaitable[int]]) -> int:
        if self._closed:
            raise PersistenceError("counter store is closed")
        self.start()
        future: asyncio.Future[int] = asyncio.get_running_loop().create_future()
        await self._queue.put(_WriteJob(name, call, future))
        # A caller that goes away does not cancel its queued write.
        return await asyncio.shield(future)

    async def _drain(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                if job is _STOP:
                    return
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: _WriteJob) -> None:
        try:
            value = await job.call()
        except Exception as exc:
            # The cache is left alone so readers never see a phantom value.
            logger.error("Counter %s failed: %s", job.name, exc)
            if not job.future.done():
                job.future.set_exception(exc)
            return

        self._version += 1
        self._remember(value)
        logger.debug("Counter %s applied, value is now %s", job.name, value)
        if not job.future.done():
            job.future.set_result(value)

    def _remember(self, value: int) -> None:
        self._value = value
        self._expires_at = self._clock() + self._ttl
