"""In-memory TTL cache shielding rate-limited market data providers.

Single-process and best-effort: entries expire lazily on access and through a
background sweep, and the store is kept near ``max_size`` by evicting the
least recently accessed entries.

The sweep runs on a daemon thread, so all state is guarded by a lock. The
lock is never held while awaiting a caller-supplied fetcher; two concurrent
misses for the same key may both fetch, and the last write wins.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Mapping

from finance_api.core.config import CacheSettings

logger = logging.getLogger(__name__)

# Occupancy ratio above which set() forces a synchronous cleanup
OVERFLOW_RATIO = 1.1

# Rough fixed cost per entry (timestamps, counters) for the memory estimate
ENTRY_OVERHEAD_BYTES = 64

_MISSING: Any = object()


@dataclass
class CacheConfig:
    """Construction-time cache options (durations in milliseconds)."""

    max_size: int = 1000
    default_ttl_ms: int = 300_000
    cleanup_interval_ms: int = 60_000
    enable_stats: bool = True

    @classmethod
    def from_settings(cls, cache_settings: CacheSettings) -> CacheConfig:
        return cls(
            max_size=cache_settings.max_size,
            default_ttl_ms=cache_settings.default_ttl_ms,
            cleanup_interval_ms=cache_settings.cleanup_interval_ms,
            enable_stats=cache_settings.enable_stats,
        )


@dataclass
class CacheEntry:
    """A cached payload plus expiry and access metadata (epoch milliseconds)."""

    key: str
    data: Any
    created_at: int
    expires_at: int
    ttl_ms: int
    hit_count: int = 0
    last_accessed_at: int = 0

    def is_expired(self, now_ms: int) -> bool:
        return now_ms > self.expires_at


@dataclass(frozen=True)
class CacheStats:
    """Snapshot returned by CacheService.get_stats()."""

    size: int
    hits: int
    misses: int
    hit_rate: float
    total_memory: int
    oldest_entry: int
    newest_entry: int


class CacheService:
    """Key/value cache with per-entry TTL, LRU eviction and hit/miss stats.

    Attributes:
        config: Effective configuration (max size, default TTL, sweep interval).
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Create the store and start its background cleanup cycle.

        Args:
            config: Cache options; defaults are used when omitted.
            clock: Time source returning UNIX time in seconds.

        Raises:
            ValueError: If max_size or cleanup_interval_ms is invalid.
        """
        self.config = config or CacheConfig()
        if self.config.max_size < 1:
            raise ValueError("max_size must be >= 1")
        if self.config.cleanup_interval_ms < 1:
            raise ValueError("cleanup_interval_ms must be >= 1")

        self._clock = clock
        self._store: dict[str, CacheEntry] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

        self._stop_event = threading.Event()
        self._cleanup_thread: threading.Thread | None = None
        self._start_cleanup_timer()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"CacheService(max_size={self.config.max_size}, "
            f"default_ttl_ms={self.config.default_ttl_ms}, size={len(self._store)}, "
            f"hits={self._hits}, misses={self._misses})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _start_cleanup_timer(self) -> None:
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            daemon=True,
            name="cache-cleanup",
        )
        self._cleanup_thread.start()

    def _cleanup_loop(self) -> None:
        interval_s = self.config.cleanup_interval_ms / 1000
        while not self._stop_event.wait(interval_s):
            try:
                self.cleanup()
            except Exception:  # pragma: no cover - keeps the sweeper alive
                logger.exception("cache.cleanup_failed")

    def _record(self, hit: bool) -> None:
        if not self.config.enable_stats:
            return
        if hit:
            self._hits += 1
        else:
            self._misses += 1

    def set(self, key: str, data: Any, ttl_ms: int | None = None) -> None:
        """Insert or overwrite an entry.

        Args:
            key: Cache key (see finance_api.utils.cache_keys).
            data: Arbitrary payload, opaque to the cache.
            ttl_ms: Time-to-live in milliseconds; a missing or zero value uses
                the configured default.
        """

        now = self._now_ms()
        actual_ttl = ttl_ms or self.config.default_ttl_ms

        with self._lock:
            self._store[key] = CacheEntry(
                key=key,
                data=data,
                created_at=now,
                expires_at=now + actual_ttl,
                ttl_ms=actual_ttl,
                last_accessed_at=now,
            )
            size = len(self._store)
            if size > self.config.max_size * OVERFLOW_RATIO:
                self._cleanup_locked(now)
                size = len(self._store)

        logger.debug(
            "cache.set",
            extra={"cache_key": key, "size": size, "ttl_ms": actual_ttl},
        )

    def get(self, key: str, default: Any = None) -> Any:
        """Return the payload for key if present and unexpired.

        Expired entries are deleted on the spot and count as a miss.

        Args:
            key: Cache key.
            default: Value returned when the key is absent or expired.

        Returns:
            Cached payload, or ``default``.
        """

        now = self._now_ms()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                self._record(hit=False)
                logger.debug("cache.miss", extra={"cache_key": key, "reason": "not_found"})
                return default

            if entry.is_expired(now):
                del self._store[key]
                self._record(hit=False)
                logger.debug("cache.miss", extra={"cache_key": key, "reason": "expired"})
                return default

            entry.hit_count += 1
            entry.last_accessed_at = now
            self._record(hit=True)
            logger.debug("cache.hit", extra={"cache_key": key, "hit_count": entry.hit_count})
            return entry.data

    def has(self, key: str) -> bool:
        """Presence check that purges expired entries but leaves stats untouched."""

        now = self._now_ms()
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            if entry.is_expired(now):
                del self._store[key]
                return False
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, None) is not None

    def clear(self) -> None:
        """Remove all cached entries and reset counters."""

        with self._lock:
            self._store.clear()
            self._hits = 0
            self._misses = 0

    async def get_or_set(
        self,
        key: str,
        fetcher: Callable[[], Awaitable[Any]],
        ttl_ms: int | None = None,
    ) -> Any:
        """Return the cached value for key, fetching and storing it on a miss.

        Concurrent misses for the same key are not de-duplicated; each caller
        runs its own fetch. Fetcher errors propagate and nothing is cached.

        Args:
            key: Cache key.
            fetcher: Zero-argument coroutine function producing the value.
            ttl_ms: Optional TTL override for the stored value.

        Returns:
            The cached or freshly fetched value.
        """

        cached = self.get(key, _MISSING)
        if cached is not _MISSING:
            return cached

        data = await fetcher()
        self.set(key, data, ttl_ms)
        return data

    async def batch_get(
        self,
        keys: Iterable[str],
        fetcher: Callable[[list[str]], Awaitable[Mapping[str, Any]]],
        ttl_ms: int | None = None,
    ) -> dict[str, Any]:
        """Resolve many keys at once, fetching all misses in a single call.

        The fetcher receives the list of missing keys and returns a mapping for
        (a subset of) them; every returned pair is cached. If the fetcher
        raises, each missing key falls back to its expired payload when one was
        still held, and is omitted otherwise.

        Args:
            keys: Cache keys to resolve.
            fetcher: Coroutine function taking the missing keys.
            ttl_ms: Optional TTL override for fetched values.

        Returns:
            Mapping of resolved keys to payloads.
        """

        result: dict[str, Any] = {}
        missing_keys: list[str] = []
        stale: dict[str, Any] = {}

        now = self._now_ms()
        with self._lock:
            for key in keys:
                if key in result or key in missing_keys:
                    continue
                entry = self._store.get(key)
                if entry is None:
                    self._record(hit=False)
                    missing_keys.append(key)
                elif entry.is_expired(now):
                    # Keep the payload for the fallback path before purging
                    stale[key] = entry.data
                    del self._store[key]
                    self._record(hit=False)
                    missing_keys.append(key)
                else:
                    entry.hit_count += 1
                    entry.last_accessed_at = now
                    self._record(hit=True)
                    result[key] = entry.data

        if not missing_keys:
            return result

        try:
            fetched = await fetcher(missing_keys)
        except Exception as exc:
            logger.warning(
                "cache.batch_fetch_failed",
                extra={
                    "missing": len(missing_keys),
                    "stale_available": len(stale),
                    "error_type": type(exc).__name__,
                },
            )
            with self._lock:
                for key in missing_keys:
                    entry = self._store.get(key)
                    if entry is not None:
                        result[key] = entry.data
                    elif key in stale:
                        result[key] = stale[key]
            return result

        for key, value in fetched.items():
            self.set(key, value, ttl_ms)
            result[key] = value
        return result

    def extend_ttl(self, key: str, additional_ms: int) -> bool:
        """Push an entry's expiry further out. Returns False for unknown keys."""

        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False
            entry.expires_at += additional_ms
            return True

    def get_expired_items(self) -> list[str]:
        """List keys that are past expiry but not yet purged."""

        now = self._now_ms()
        with self._lock:
            return [key for key, entry in self._store.items() if entry.is_expired(now)]

    def get_stats(self) -> CacheStats:
        """Return size, hit/miss counters and an approximate memory footprint."""

        now = self._now_ms()
        with self._lock:
            total = self._hits + self._misses
            created = [entry.created_at for entry in self._store.values()]
            return CacheStats(
                size=len(self._store),
                hits=self._hits,
                misses=self._misses,
                hit_rate=self._hits / total if total > 0 else 0.0,
                total_memory=self._estimate_memory_locked(),
                oldest_entry=min(created) if created else now,
                newest_entry=max(created) if created else now,
            )

    def cleanup(self) -> int:
        """Run the expiry/eviction sweep now. Returns the number of entries removed."""

        with self._lock:
            return self._cleanup_locked(self._now_ms())

    def destroy(self) -> None:
        """Stop the cleanup cycle and drop all entries. The instance is unusable afterwards."""

        self._stop_event.set()
        thread = self._cleanup_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._cleanup_thread = None
        self.clear()
        logger.debug("cache.destroyed")

    def _cleanup_locked(self, now_ms: int) -> int:
        expired_keys = [key for key, entry in self._store.items() if entry.is_expired(now_ms)]
        for key in expired_keys:
            del self._store[key]

        # Full sort by access time: O(n log n) per sweep
        evicted = 0
        surplus = len(self._store) - self.config.max_size
        if surplus > 0:
            by_access = sorted(self._store.values(), key=lambda entry: entry.last_accessed_at)
            for entry in by_access[:surplus]:
                del self._store[entry.key]
            evicted = surplus

        if expired_keys or evicted:
            logger.debug(
                "cache.cleanup",
                extra={
                    "expired": len(expired_keys),
                    "evicted": evicted,
                    "size": len(self._store),
                },
            )
        return len(expired_keys) + evicted

    def _estimate_memory_locked(self) -> int:
        size = 0
        for key, entry in self._store.items():
            size += len(key) * 2
            size += _payload_length(entry.data) * 2
            size += ENTRY_OVERHEAD_BYTES
        return size


def _payload_length(data: Any) -> int:
    try:
        return len(json.dumps(data, default=str))
    except (TypeError, ValueError):
        # Non-string mapping keys or circular references
        return len(repr(data))
