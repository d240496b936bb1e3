"""Brick handler — runs a request through the guard, the code check and the store."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from brick_counter.errors import PersistenceError
from brick_counter.services.attempt_guard import AttemptGuard
from brick_counter.services.counter_store import CounterStore
from brick_counter.services.otp_engine import OTPEngine

logger = logging.getLogger(__name__)

DEFAULT_MAX_BRICKS = 3


class PlaceStatus(str, enum.Enum):
    PLACED = "placed"
    BLOCKED = "blocked"
    INVALID_CODE = "invalid_code"
    INVALID_AMOUNT = "invalid_amount"
    STORE_ERROR = "store_error"


@dataclass
class PlaceResult:
    """Value object returned by :meth:`BrickHandler.place_bricks`."""

    status: PlaceStatus
    count: int | None = None

    @property
    def ok(self) -> bool:
        return self.status is PlaceStatus.PLACED


class BrickHandler:
    """Orchestrates the public counter operations.

    Placement flow
    --------------
    1. A blocked client is rejected without touching its failure record.
    2. A wrong or expired code is recorded against the client.
    3. A valid code clears the client's failures and increments the counter.
       A storage failure at this point is not held against the client.
    """

    def __init__(
        self,
        otp_engine: OTPEngine,
        attempt_guard: AttemptGuard,
        counter_store: CounterStore,
        max_bricks: int = DEFAULT_MAX_BRICKS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._otp = otp_engine
        self._guard = attempt_guard
        self._store = counter_store
        self._max_bricks = max_bricks
        self._clock = clock

    async def get_counter(self) -> int:
        """Current count; never fails."""
        return await self._store.read()

    def get_server_time(self) -> int:
        """Server wall-clock time in epoch milliseconds."""
        return int(self._clock() * 1000)

    async def place_bricks(
        self, client_id: str, amount: int | str | None, claimed_code: str | None
    ) -> PlaceResult:
        """Add *amount* bricks if *claimed_code* is currently valid."""
        now = self._clock()

        if self._guard.is_blocked(client_id, now):
            logger.info("Rejected blocked client %s", client_id)
            return PlaceResult(PlaceStatus.BLOCKED)

        delta = self._parse_amount(amount)
        if delta is None:
            logger.info("Rejected invalid amount %r from %s", amount, client_id)
            return PlaceResult(PlaceStatus.INVALID_AMOUNT)

        if not self._otp.validate(claimed_code, now):
            if self._guard.record_failure(client_id, now):
                logger.warning("Client %s blocked after repeated invalid codes", client_id)
            else:
                logger.info("Invalid code from %s", client_id)
            return PlaceResult(PlaceStatus.INVALID_CODE)

        self._guard.record_success(client_id)
        try:
            count = await self._store.increment(delta)
        except PersistenceError as exc:
            logger.error("Could not place %s bricks for %s: %s", delta, client_id, exc)
            return PlaceResult(PlaceStatus.STORE_ERROR)

        logger.info("Client %s placed %s bricks, total %s", client_id, delta, count)
        return PlaceResult(PlaceStatus.PLACED, count)

    def _parse_amount(self, amount: int | str | None) -> int | None:
        if amount is None or isinstance(amount, bool):
            return None
        if isinstance(amount, int):
            delta = amount
        else:
            text = amount.strip()
            if len(text) > len(str(self._max_bricks)) or not (text.isascii() and text.isdigit()):
                return None
            delta = int(text)
        if not 1 <= delta <= self._max_bricks:
            return None
        return delta
