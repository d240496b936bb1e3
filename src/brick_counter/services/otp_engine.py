"""Time-windowed one-time codes derived from a shared secret.

A code is valid for the window it was derived for and for the window right
after it, which absorbs client/server clock skew and request latency of up to
one interval.
"""

from __future__ import annotations

import hashlib
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

from brick_counter.config import Settings
from brick_counter.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Number of leading hex digits of the digest used for the code.
HEX_DIGITS = 4
MAX_MASK_BITS = HEX_DIGITS * 4


@dataclass(frozen=True)
class _CachedCode:
    window: int
    code: int
    expires_at: float


class OTPEngine:
    """Derives and validates codes for fixed-length time windows.

    The engine is pure apart from a single memoized ``(window, code)`` entry
    for the current window; validation results never depend on it.
    """

    def __init__(
        self,
        secret: str | bytes,
        interval_seconds: int = 10,
        mask_bits: int = 10,
        hash_name: str = "sha256",
        clock: Callable[[], float] = time.time,
    ) -> None:
        if isinstance(secret, str):
            secret = secret.encode("utf-8")
        if not secret:
            raise ConfigurationError("OTP secret must not be empty")
        if interval_seconds <= 0:
            raise ConfigurationError("OTP interval must be a positive number of seconds")
        if not 1 <= mask_bits <= MAX_MASK_BITS:
            raise ConfigurationError(f"OTP mask width must be between 1 and {MAX_MASK_BITS} bits")
        try:
            hashlib.new(hash_name)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown OTP hash algorithm {hash_name!r}") from exc

        self._secret = secret
        self._interval = interval_seconds
        self._mask = (1 << mask_bits) - 1
        self._hash_name = hash_name
        self._clock = clock
        self._cache: _CachedCode | None = None

    @classmethod
    def from_settings(cls, settings: Settings, clock: Callable[[], float] = time.time) -> OTPEngine:
        """Build the engine from app settings, failing fast on a missing secret."""
        if not settings.otp_secret:
            raise ConfigurationError("OTP_SECRET is not set; refusing to start")
        return cls(
            settings.otp_secret,
            interval_seconds=settings.otp_interval_seconds,
            mask_bits=settings.otp_mask_bits,
            hash_name=settings.otp_hash_name,
            clock=clock,
        )

    @property
    def interval_seconds(self) -> int:
        return self._interval

    @property
    def max_code(self) -> int:
        """Largest code the engine can produce (codes start at 1)."""
        return self._mask + 1

    def window_for(self, now: float) -> int:
        """Return the window index containing unix time *now*."""
        return int(now // self._interval)

    def code_for(self, window: int) -> int:
        """Derive the code for *window*; deterministic for a given secret."""
        cached = self._cache
        if cached is not None and cached.window == window:
            return cached.code
        digest = hashlib.new(self._hash_name, self._secret + str(window).encode("ascii"))
        return (int(digest.hexdigest()[:HEX_DIGITS], 16) & self._mask) + 1

    def current_code(self, now: float | None = None) -> int:
        """Return the code for the window containing *now*, memoizing it."""
        if now is None:
            now = self._clock()
        window = self.window_for(now)
        cached = self._cache
        if cached is not None and cached.window == window:
            return cached.code
        code = self.code_for(window)
        self._cache = _CachedCode(window, code, expires_at=(window + 1) * self._interval)
        return code

    def validate(self, claimed: str | int | None, now: float | None = None) -> bool:
        """Return ``True`` if *claimed* matches the current or previous window.

        Anything that is not a plain decimal number inside the code range
        simply fails to match.
        """
        code = self._parse(claimed)
        if code is None:
            return False
        if now is None:
            now = self._clock()
        window = self.window_for(now)
        return code == self.current_code(now) or code == self.code_for(window - 1)

    def purge_cache(self, now: float | None = None) -> bool:
        """Drop the memoized code once its window has ended.

        Returns ``True`` if an entry was removed.
        """
        if now is None:
            now = self._clock()
        cached = self._cache
        if cached is None or now < cached.expires_at:
            return False
        self._cache = None
        logger.debug("Dropped cached code for window %s", cached.window)
        return True

    def _parse(self, claimed: str | int | None) -> int | None:
        if claimed is None or isinstance(claimed, bool):
            return None
        if isinstance(claimed, int):
            value = claimed
        else:
            text = str(claimed).strip()
            # Longer than any code we can produce.
            if not text or len(text) > len(str(self.max_code)):
                return None
            if not (text.isascii() and text.isdigit()):
                return None
            value = int(text)
        if not 1 <= value <= self.max_code:
            return None
        return value
