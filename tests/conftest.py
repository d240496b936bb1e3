"""Shared fixtures: a controllable clock and an in-memory counter backend."""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime

# Keep the module-level engine away from the on-disk database.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import pytest  # noqa: E402

from brick_counter.errors import PersistenceError  # noqa: E402

SECRET = "abc"
# sha256("abc" + str(window)), first 4 hex digits, masked to 10 bits, plus one.
GOLDEN_CODES = {999: 481, 1000: 379, 1001: 445, 1002: 202}


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@dataclass
class LogEntry:
    logged_at: datetime
    value: int


class MemoryBackend:
    """Counter backend that is deliberately *not* atomic.

    ``atomic_increment`` reads, yields to the event loop, then writes, so
    two overlapping calls lose an update unless something serializes them.
    """

    def __init__(self, value: int = 0) -> None:
        self.value = value
        self.reads = 0
        self.fail = False
        self.log: list[LogEntry] = []

    async def read(self) -> int:
        self.reads += 1
        if self.fail:
            raise PersistenceError("backend down")
        await asyncio.sleep(0)
        return self.value

    async def atomic_increment(self, delta: int) -> int:
        if self.fail:
            raise PersistenceError("backend down")
        current = self.value
        await asyncio.sleep(0)
        self.value = current + delta
        return self.value

    async def overwrite(self, value: int) -> int:
        if self.fail:
            raise PersistenceError("backend down")
        await asyncio.sleep(0)
        self.value = value
        return value

    async def append_log_entry(self, timestamp: datetime, value: int) -> None:
        if self.fail:
            raise PersistenceError("backend down")
        self.log.append(LogEntry(timestamp, value))

    async def recent_log_entries(self, limit: int = 20) -> list[LogEntry]:
        return list(reversed(self.log))[:limit]


@pytest.fixture
def clock() -> FakeClock:
    """Wall clock parked in the middle of window 1000 (10s windows)."""
    return FakeClock(10_005.0)


@pytest.fixture
def monotonic() -> FakeClock:
    return FakeClock(0.0)


@pytest.fixture
def backend() -> MemoryBackend:
    return MemoryBackend()
