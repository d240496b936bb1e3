"""Attempt guard — tracks failed code submissions and blocks abusive clients."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from brick_counter.config import Settings

logger = logging.getLogger(__name__)


@dataclass
class FailureRecord:
    """Failure timestamps for one client, oldest first."""

    attempts: list[float] = field(default_factory=list)

    def prune(self, cutoff: float) -> None:
        """Drop attempts older than *cutoff*."""
        keep_from = 0
        while keep_from < len(self.attempts) and self.attempts[keep_from] < cutoff:
            keep_from += 1
        if keep_from:
            del self.attempts[:keep_from]


@dataclass(frozen=True)
class BlockRecord:
    """A temporary block imposed on one client."""

    blocked_at: float
    unblock_at: float

    def remaining(self, now: float) -> float:
        return max(0.0, self.unblock_at - now)


class AttemptGuard:
    """In-memory failure tracking keyed by client identifier.

    A client moves Clean → Flagged on its first failure and Flagged → Blocked
    once ``max_failed_attempts`` failures fall inside the trailing
    ``time_window_minutes``. A block always runs its full
    ``block_duration_minutes``; a later success only clears failures.

    State lives in this instance only. Stale entries are removed lazily on
    access and by :meth:`purge_expired`, which maintenance calls periodically.
    """

    def __init__(
        self,
        max_failed_attempts: int = 3,
        time_window_minutes: float = 3,
        block_duration_minutes: float = 1,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_failed_attempts < 1:
            raise ValueError("max_failed_attempts must be at least 1")
        self.max_failed_attempts = max_failed_attempts
        self.window_seconds = time_window_minutes * 60
        self.block_seconds = block_duration_minutes * 60
        self.clock = clock
        self._failures: dict[str, FailureRecord] = {}
        self._blocks: dict[str, BlockRecord] = {}

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> AttemptGuard:
        return cls(
            max_failed_attempts=settings.max_failed_attempts,
            time_window_minutes=settings.guard_time_window_minutes,
            block_duration_minutes=settings.block_duration_minutes,
            clock=clock,
        )

    # ── Request path ─────────────────────────────────────

    def is_blocked(self, client_id: str, now: float | None = None) -> bool:
        """Return ``True`` while *client_id* is serving a block."""
        block = self._blocks.get(client_id)
        if block is None:
            return False
        if now is None:
            now = self.clock()
        if now >= block.unblock_at:
            del self._blocks[client_id]
            return False
        return True

    def record_failure(self, client_id: str, now: float | None = None) -> bool:
        """Record a failed attempt and return whether the client is now blocked."""
        if now is None:
            now = self.clock()
        if self.is_blocked(client_id, now):
            return True

        record = self._failures.setdefault(client_id, FailureRecord())
        record.prune(now - self.window_seconds)
        record.attempts.append(now)

        if len(record.attempts) < self.max_failed_attempts:
            return False

        # The failures that earned the block are consumed by it.
        del self._failures[client_id]
        self._blocks[client_id] = BlockRecord(blocked_at=now, unblock_at=now + self.block_seconds)
        return True

    def record_success(self, client_id: str) -> None:
        """Forget the client's failures. An active block is left in place."""
        self._failures.pop(client_id, None)

    # ── Maintenance ──────────────────────────────────────

    def purge_expired(self, now: float | None = None) -> tuple[int, int]:
        """Sweep stale failures and elapsed blocks.

        Returns ``(failure_records_removed, blocks_removed)``.
        """
        if now is None:
            now = self.clock()
        cutoff = now - self.window_seconds

        emptied = []
        for client_id, record in self._failures.items():
            record.prune(cutoff)
            if not record.attempts:
                emptied.append(client_id)
        for client_id in emptied:
            del self._failures[client_id]

        elapsed = [cid for cid, block in self._blocks.items() if now >= block.unblock_at]
        for client_id in elapsed:
            del self._blocks[client_id]

        return len(emptied), len(elapsed)

    # ── Admin queries ────────────────────────────────────

    def blocked_clients(self, now: float | None = None) -> dict[str, BlockRecord]:
        """Return every active block, dropping elapsed ones on the way."""
        if now is None:
            now = self.clock()
        return {
            client_id: block
            for client_id, block in list(self._blocks.items())
            if self.is_blocked(client_id, now)
        }

    def pending_failures(self, now: float | None = None) -> dict[str, list[float]]:
        """Return the surviving failure timestamps of every flagged client."""
        if now is None:
            now = self.clock()
        cutoff = now - self.window_seconds
        pending = {}
        for client_id, record in list(self._failures.items()):
            record.prune(cutoff)
            if record.attempts:
                pending[client_id] = list(record.attempts)
            else:
                del self._failures[client_id]
        return pending

    def clear_block(self, client_id: str) -> bool:
        """Lift a block manually. Returns ``False`` if there was none."""
        return self._blocks.pop(client_id, None) is not None

    def clear_failures(self, client_id: str) -> bool:
        """Forget a client's failures manually. Returns ``False`` if there were none."""
        return self._failures.pop(client_id, None) is not None

    @property
    def active_count(self) -> int:
        """Number of clients with any tracked state (useful for monitoring)."""
        return len(self._failures.keys() | self._blocks.keys())
