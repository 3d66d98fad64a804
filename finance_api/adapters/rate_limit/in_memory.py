"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- A window starts at the first request seen for a key, not at a wall-clock
  boundary.
- Expired windows are dropped by a background sweep, so memory tracks the set
  of recently active callers.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import replace
from typing import Callable

from finance_api.adapters.rate_limit.base import (
    AbstractRateLimiter,
    RateLimitConfig,
    RateLimitResult,
    RateLimitWindow,
)

logger = logging.getLogger(__name__)


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter using a fixed time window per key.

    ``check`` is both the admission test and the consumption of one unit of
    quota, so callers must invoke it exactly once per request.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        *,
        cleanup_interval_ms: int = 60_000,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            config: Window/limit policy; defaults to 100 requests per minute.
            cleanup_interval_ms: Interval of the expired-window sweep.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If max_requests, window_ms or cleanup_interval_ms are invalid.
        """
        self.config = config or RateLimitConfig()
        if self.config.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.config.window_ms < 1:
            raise ValueError("window_ms must be >= 1")
        if cleanup_interval_ms < 1:
            raise ValueError("cleanup_interval_ms must be >= 1")

        self._clock = clock
        self._cleanup_interval_ms = cleanup_interval_ms
        self._lock = threading.RLock()
        self._windows: dict[str, RateLimitWindow] = {}

        self._stop_event = threading.Event()
        self._cleanup_thread: threading.Thread | None = threading.Thread(
            target=self._cleanup_loop,
            daemon=True,
            name="rate-limit-cleanup",
        )
        self._cleanup_thread.start()

    @property
    def limit(self) -> int:
        return self.config.max_requests

    @property
    def window_ms(self) -> int:
        return self.config.window_ms

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _cleanup_loop(self) -> None:
        interval_s = self._cleanup_interval_ms / 1000
        while not self._stop_event.wait(interval_s):
            self.cleanup()

    def check(self, identifier: str) -> RateLimitResult:
        """Check and consume one request for the provided identifier.

        A fresh window is opened when none exists or the previous one has
        reset. Denied requests do not count against the window.

        Args:
            identifier: Caller identity; mapped through the key generator.

        Returns:
            RateLimitResult with the allowance decision and metadata.
        """
        key = self.config.key_generator(identifier)
        now = self._now_ms()
        limit = self.config.max_requests

        with self._lock:
            window = self._windows.get(key)
            if window is None or now >= window.reset_at:
                window = RateLimitWindow(
                    identifier=key,
                    count=0,
                    reset_at=now + self.config.window_ms,
                )
                self._windows[key] = window

            if window.count >= limit:
                return RateLimitResult(
                    success=False,
                    limit=limit,
                    remaining=0,
                    reset_at=window.reset_at,
                    retry_after=window.reset_at - now,
                )

            window.count += 1
            return RateLimitResult(
                success=True,
                limit=limit,
                remaining=limit - window.count,
                reset_at=window.reset_at,
            )

    def reset(self, identifier: str) -> None:
        key = self.config.key_generator(identifier)
        with self._lock:
            self._windows.pop(key, None)

    def get_status(self, identifier: str) -> RateLimitWindow | None:
        key = self.config.key_generator(identifier)
        with self._lock:
            window = self._windows.get(key)
            # Copy so callers can't mutate live counters
            return replace(window) if window is not None else None

    def active_windows(self) -> int:
        """Number of keys whose window has not yet reset."""

        now = self._now_ms()
        with self._lock:
            return sum(1 for window in self._windows.values() if now < window.reset_at)

    def cleanup(self) -> int:
        """Drop windows that have reset. Returns how many were removed."""

        now = self._now_ms()
        with self._lock:
            expired = [key for key, window in self._windows.items() if now >= window.reset_at]
            for key in expired:
                del self._windows[key]

        if expired:
            logger.debug(
                "rate_limit.cleanup",
                extra={"removed": len(expired), "tracked": len(self._windows)},
            )
        return len(expired)

    def destroy(self) -> None:
        self._stop_event.set()
        thread = self._cleanup_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._cleanup_thread = None
        with self._lock:
            self._windows.clear()
