"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
- Windows start at the first request seen for a key, not on clock boundaries.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.rate_limit.base import (
    DEFAULT_LIMIT,
    DEFAULT_WINDOW_MS,
    AbstractRateLimiter,
    RateLimitDecision,
)

logger = logging.getLogger(__name__)


def _now_ms() -> float:
    return time.time() * 1000


@dataclass
class _Counter:
    count: int
    window_start: float
    window_ms: int


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per ``scope:identifier`` in fixed windows.

    A key's window opens on its first request and lasts ``window_ms``. Once the
    window has fully elapsed the next request starts a fresh window.

    Important:
        This limiter is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.

        Counters are kept for the lifetime of the process unless
        ``retention_ms`` is set, in which case expired counters are swept
        opportunistically.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = _now_ms,
        retention_ms: int | None = None,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            clock: Time source returning UNIX time in milliseconds.
            retention_ms: Optional sweep horizon. When set, counters whose
                window has elapsed and that are older than this are removed at
                most once per horizon.

        Raises:
            ValueError: If retention_ms is not positive.
        """
        if retention_ms is not None and retention_ms < 1:
            raise ValueError("retention_ms must be >= 1")

        self._clock = clock
        self._retention_ms = retention_ms
        self._lock = threading.RLock()
        self._counters: dict[str, _Counter] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)

    @staticmethod
    def _build_key(identifier: str, scope: str) -> str:
        return f"{scope}:{identifier}"

    def check(
        self,
        identifier: str,
        scope: str,
        *,
        limit: int = DEFAULT_LIMIT,
        window_ms: int = DEFAULT_WINDOW_MS,
    ) -> RateLimitDecision:
        """Count a request and decide whether it may proceed.

        The window is half-open: a request arriving exactly ``window_ms`` after
        the window opened already belongs to the next window, so waiting the
        returned ``retry_after_seconds`` is always enough. Resetting only once
        the window is strictly exceeded would reject a client that waited
        exactly the advertised time after a rejection at the window start.

        Args:
            identifier: Entity being limited (e.g., client IP address).
            scope: Action the budget applies to.
            limit: Maximum admitted requests per window.
            window_ms: Window length in milliseconds.

        Returns:
            RateLimitDecision with the admission outcome.
        """
        key = self._build_key(identifier, scope)
        now = self._clock()

        with self._lock:
            self._maybe_sweep_locked(now)

            counter = self._counters.get(key)
            if counter is None:
                self._counters[key] = _Counter(count=1, window_start=now, window_ms=window_ms)
                return RateLimitDecision(allowed=True, remaining=max(0, limit - 1), retry_after_seconds=0)

            elapsed = now - counter.window_start
            if elapsed >= window_ms:
                counter.count = 1
                counter.window_start = now
                counter.window_ms = window_ms
                return RateLimitDecision(allowed=True, remaining=max(0, limit - 1), retry_after_seconds=0)

            if counter.count >= limit:
                retry_after = max(0, math.ceil((window_ms - elapsed) / 1000))
                return RateLimitDecision(allowed=False, remaining=0, retry_after_seconds=retry_after)

            counter.count += 1
            return RateLimitDecision(
                allowed=True,
                remaining=max(0, limit - counter.count),
                retry_after_seconds=0,
            )

    def sweep(self, *, older_than_ms: int | None = None) -> int:
        """Remove counters whose window has elapsed.

        Args:
            older_than_ms: Only remove counters whose window opened at least
                this long ago. Defaults to the configured retention (or 0).

        Returns:
            Number of counters removed.
        """
        with self._lock:
            horizon = older_than_ms if older_than_ms is not None else (self._retention_ms or 0)
            return self._sweep_locked(self._clock(), horizon)

    def _maybe_sweep_locked(self, now: float) -> None:
        if self._retention_ms is None:
            return
        if now - self._last_sweep < self._retention_ms:
            return
        self._sweep_locked(now, self._retention_ms)

    def _sweep_locked(self, now: float, older_than_ms: int) -> int:
        stale = [
            key
            for key, counter in self._counters.items()
            if now - counter.window_start >= max(counter.window_ms, older_than_ms)
        ]
        for key in stale:
            del self._counters[key]
        self._last_sweep = now

        if stale:
            logger.debug(
                "rate_limit.swept",
                extra={"removed": len(stale), "remaining_keys": len(self._counters)},
            )
        return len(stale)
