"""Brick client — async HTTP client for the public counter API.

Used by the console simulator. It syncs with the server clock via
``/time`` and derives codes locally from the shared secret, exactly as the
official page does.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

import httpx

from brick_counter.config import settings
from brick_counter.services.otp_engine import OTPEngine

logger = logging.getLogger(__name__)


@dataclass
class PlaceOutcome:
    """Lightweight value object returned by :meth:`BrickClient.place`."""

    placed: bool
    count: int | None = None
    status_code: int | None = None


class BrickClient:
    """Async HTTP wrapper around ``/bricks``, ``/time`` and ``/place``."""

    def __init__(
        self,
        base_url: str | None = None,
        otp_engine: OTPEngine | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.server_base_url).rstrip("/")
        self._otp = otp_engine
        self._transport = transport
        # Server clock minus local clock, in seconds.
        self.clock_offset = 0.0

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, transport=self._transport)

    async def get_bricks(self) -> int | None:
        """Return the current count, ``None`` if the server could not be reached."""
        try:
            async with self._client() as client:
                resp = await client.get("/bricks")
            if resp.status_code == 200:
                return int(resp.text.strip())
            logger.error("Bricks lookup failed: %s %s", resp.status_code, resp.text)
            return None
        except (httpx.HTTPError, ValueError) as exc:
            logger.exception("Bricks lookup request error: %s", exc)
            return None

    async def sync_clock(self) -> float:
        """Measure the server clock offset and remember it."""
        started = time.time()
        async with self._client() as client:
            resp = await client.get("/time")
        resp.raise_for_status()
        finished = time.time()
        server_seconds = int(resp.text.strip()) / 1000
        self.clock_offset = server_seconds - (started + finished) / 2
        logger.info("Server clock offset is %.3fs", self.clock_offset)
        return self.clock_offset

    def current_code(self) -> int:
        """Code for the current server-side window."""
        if self._otp is None:
            raise RuntimeError("BrickClient needs an OTPEngine to derive codes")
        return self._otp.current_code(time.time() + self.clock_offset)

    async def place(self, amount: int = 1, code: int | str | None = None) -> PlaceOutcome:
        """Place *amount* bricks, deriving the code unless one is given."""
        if code is None:
            code = self.current_code()
        try:
            async with self._client() as client:
                resp = await client.get("/place", params={"code": str(code), "amount": str(amount)})
        except httpx.HTTPError as exc:
            logger.exception("Place request error: %s", exc)
            return PlaceOutcome(placed=False)

        if resp.status_code == 200:
            # Some deployments append a timestamp after the count.
            return PlaceOutcome(placed=True, count=int(resp.text.split()[0]), status_code=200)
        logger.info("Place refused: %s", resp.status_code)
        return PlaceOutcome(placed=False, status_code=resp.status_code)
