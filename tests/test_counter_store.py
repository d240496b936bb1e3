"""Tests for the CounterStore — TTL cache, stale fallback and write serialization."""

import asyncio

import pytest
import pytest_asyncio

from brick_counter.errors import PersistenceError
from brick_counter.services.counter_store import CounterStore
from conftest import FakeClock, MemoryBackend


@pytest_asyncio.fixture
async def store(backend: MemoryBackend, monotonic: FakeClock):
    counter_store = CounterStore(backend, ttl_seconds=60, clock=monotonic)
    counter_store.start()
    yield counter_store
    await counter_store.stop()


# ── Reads ────────────────────────────────────────────────

@pytest.mark.asyncio
async def test_read_is_cached_within_ttl(store, backend, monotonic):
    backend.value = 7
    assert await store.read() == 7
    backend.value = 8
    monotonic.advance(59)
    assert await store.read() == 7
    assert backend.reads == 1


@pytest.mark.asyncio
async def test_read_refreshes_once_after_ttl(store, backend, monotonic):
    await store.read()
    backend.value = 8
    monotonic.advance(60)
    assert await store.read() == 8
    assert await store.read() == 8
    assert backend.reads == 2


@pytest.mark.asyncio
async def test_read_defaults_to_zero_when_backend_down(store, backend):
    backend.value = 5
    backend.fail = True
    assert await store.read() == 0


@pytest.mark.asyncio
async def test_read_serves_stale_value_when_refresh_fails(store, backend, monotonic):
    backend.value = 5
    assert await store.read() == 5
    backend.value = 9
    backend.fail = True
    monotonic.advance(120)
    assert await store.read() == 5
    # The failed refresh is retried on the next read.
    backend.fail = False
    assert await store.read() == 9


@pytest.mark.asyncio
async def test_concurrent_readers_share_one_refresh(store, backend, monotonic):
    backend.value = 3
    assert await store.read() == 3
    backend.value = 6
    monotonic.advance(60)

    results = await asyncio.gather(*(store.read() for _ in range(20)))
    assert results == [6] * 20
    assert backend.reads == 2


@pytest.mark.asyncio
async def test_cancelled_reader_does_not_cancel_refresh(store, backend):
    backend.value = 4
    reader = asyncio.create_task(store.read())
    await asyncio.sleep(0)
    reader.cancel()
    with pytest.raises(asyncio.CancelledError):
        await reader
    assert await store.read() == 4
    assert backend.reads == 1


@pytest.mark.asyncio
async def test_slow_refresh_does_not_overwrite_newer_write(monotonic):
    release = asyncio.Event()

    class SlowReadBackend(MemoryBackend):
        async def read(self) -> int:
            value = self.value
            await release.wait()
            return value

    backend = SlowReadBackend(value=10)
    store = CounterStore(backend, ttl_seconds=60, clock=monotonic)
    store.start()

    reader = asyncio.create_task(store.read())
    await asyncio.sleep(0)
    assert await store.increment(1) == 11
    release.set()
    assert await reader == 11
    assert store.cached_value == 11
    await store.stop()


# ── Writes ───────────────────────────────────────────────

@pytest.mark.asyncio
async def test_increment_returns_new_value_and_refreshes_cache(store, backend):
    backend.value = 3
    assert await store.increment(2) == 5
    assert await store.read() == 5
    assert backend.reads == 0


@pytest.mark.asyncio
async def test_set_overwrites_value(store, backend):
    backend.value = 3
    assert await store.set(100) == 100
    assert backend.value == 100
    assert await store.read() == 100


@pytest.mark.asyncio
@pytest.mark.parametrize("k", [2, 10, 100])
async def test_concurrent_increments_lose_no_updates(store, backend, k):
    backend.value = 40
    results = await asyncio.gather(*(store.increment(1) for _ in range(k)))
    assert backend.value == 40 + k
    assert sorted(results) == list(range(41, 41 + k))
    assert await store.read() == 40 + k


@pytest.mark.asyncio
async def test_backend_alone_loses_updates():
    # Sanity check: the fake backend really does race without the queue.
    backend = MemoryBackend()
    await asyncio.gather(*(backend.atomic_increment(1) for _ in range(10)))
    assert backend.value < 10


@pytest.mark.asyncio
async def test_writes_run_in_submission_order(store, backend):
    results = await asyncio.gather(
        store.set(10), store.increment(1), store.set(0), store.increment(2)
    )
    assert results == [10, 11, 0, 2]
    assert backend.value == 2


@pytest.mark.asyncio
async def test_failed_increment_leaves_cache_untouched(store, backend):
    backend.value = 4
    assert await store.read() == 4
    backend.fail = True
    with pytest.raises(PersistenceError):
        await store.increment(1)
    assert store.cached_value == 4
    backend.fail = False
    assert await store.read() == 4


@pytest.mark.asyncio
async def test_failed_write_does_not_stall_queue(store, backend):
    backend.fail = True
    with pytest.raises(PersistenceError):
        await store.increment(1)
    backend.fail = False
    assert await store.increment(1) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("delta", [0, -1, True, 1.5, "1"])
async def test_increment_rejects_bad_delta(store, delta):
    with pytest.raises(ValueError):
        await store.increment(delta)


@pytest.mark.asyncio
async def test_set_rejects_negative_value(store):
    with pytest.raises(ValueError):
        await store.set(-1)


@pytest.mark.asyncio
async def test_cancelled_caller_does_not_cancel_write(store, backend):
    task = asyncio.create_task(store.increment(1))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await store.stop()
    assert backend.value == 1


# ── Lifecycle ────────────────────────────────────────────

@pytest.mark.asyncio
async def test_stop_drains_queued_writes(backend, monotonic):
    store = CounterStore(backend, clock=monotonic)
    store.start()
    pending = [asyncio.create_task(store.increment(1)) for _ in range(5)]
    await asyncio.sleep(0)
    await store.stop()
    assert backend.value == 5
    assert await asyncio.gather(*pending) == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_writes_after_stop_are_refused(backend, monotonic):
    store = CounterStore(backend, clock=monotonic)
    await store.stop()
    with pytest.raises(PersistenceError):
        await store.increment(1)


@pytest.mark.asyncio
async def test_worker_starts_lazily(backend, monotonic):
    store = CounterStore(backend, clock=monotonic)
    assert await store.increment(3) == 3
    await store.stop()
