"""Background maintenance — periodic sweeps and counter history snapshots."""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Protocol

from brick_counter.errors import PersistenceError
from brick_counter.services.attempt_guard import AttemptGuard
from brick_counter.services.counter_store import CounterStore
from brick_counter.services.otp_engine import OTPEngine

logger = logging.getLogger(__name__)


class CounterHistory(Protocol):
    async def append_log_entry(self, timestamp: datetime, value: int) -> None: ...


class MaintenanceScheduler:
    """Runs the guard/OTP sweep and the history snapshot on fixed intervals.

    Each run is self-contained, so a delayed or skipped tick never leaves
    state half-updated. A failing run is logged and retried on the next tick.
    """

    def __init__(
        self,
        attempt_guard: AttemptGuard,
        otp_engine: OTPEngine,
        counter_store: CounterStore,
        history: CounterHistory,
        sweep_interval_seconds: float = 60,
        log_interval_seconds: float = 300,
    ) -> None:
        self._guard = attempt_guard
        self._otp = otp_engine
        self._store = counter_store
        self._history = history
        self._sweep_interval = max(0.1, float(sweep_interval_seconds))
        self._log_interval = max(0.1, float(log_interval_seconds))
        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()

    async def start(self) -> None:
        """Start both background loops."""
        if self._tasks:
            return
        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._every(self._sweep_interval, self.sweep_once), name="guard-sweep"),
            asyncio.create_task(self._every(self._log_interval, self.log_counter_once), name="counter-log"),
        ]

    async def stop(self) -> None:
        """Stop both loops, waiting for an in-progress run to finish."""
        if not self._tasks:
            return
        self._stopping.set()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results):
            if isinstance(result, BaseException):
                logger.error("Maintenance loop %s ended with %r", task.get_name(), result)
        self._tasks = []

    async def sweep_once(self) -> None:
        """Purge expired guard state and the stale OTP cache entry."""
        failures, blocks = self._guard.purge_expired()
        self._otp.purge_cache()
        logger.debug(
            "Sweep removed %s failure records and %s blocks; %s clients tracked",
            failures,
            blocks,
            self._guard.active_count,
        )

    async def log_counter_once(self) -> int:
        """Append the current count to the history log and return it."""
        value = await self._store.read()
        await self._history.append_log_entry(datetime.now(UTC), value)
        logger.info("Counter snapshot: %s bricks", value)
        return value

    async def _every(self, interval: float, job) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=interval)
            except TimeoutError:
                pass
            else:
                return

            try:
                await job()
            except PersistenceError as exc:
                logger.warning("Maintenance job %s failed: %s", job.__name__, exc)
            except Exception:
                logger.exception("Maintenance job %s crashed; retrying next tick", job.__name__)
