# domainscan/scanner/cache.py
"""
Result cache and per-identifier rate limiter.

One ScannerCache is built at app start (see domainscan.extensions) and
handed to the ScanEngine. Both stores share a lock because the Flask
server can run requests on several threads.

Cache:        keyed by normalized key, entries expire lazily on read after
              CACHE_TTL_SECONDS.
Sweep:        every CLEANUP_INTERVAL_SECONDS, the next write or rate-limit
              check also drops expired entries and stale windows, so
              neither store grows without bound between explicit cleanups.
Rate limiter: fixed window of RATE_LIMIT_WINDOW_SECONDS, at most
              RATE_LIMIT_MAX_REQUESTS per identifier. A denied request is a
              returned value, never an exception.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

CACHE_TTL_SECONDS = 30 * 60
RATE_LIMIT_WINDOW_SECONDS = 60
RATE_LIMIT_MAX_REQUESTS = 5
CLEANUP_INTERVAL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    data: Any
    created_at: float


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    retry_after: Optional[int] = None   # whole seconds until the window resets

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"allowed": self.allowed}
        if self.retry_after is not None:
            out["retryAfter"] = self.retry_after
        return out


def _normalize_key(key: str) -> str:
    return (key or "").strip().lower()


class ScannerCache:
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        ttl: float = CACHE_TTL_SECONDS,
        window: float = RATE_LIMIT_WINDOW_SECONDS,
        max_requests: int = RATE_LIMIT_MAX_REQUESTS,
        cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
    ):
        self._clock = clock
        self.ttl = ttl
        self.window = window
        self.max_requests = max_requests
        self.cleanup_interval = cleanup_interval
        self._entries: Dict[str, CacheEntry] = {}
        self._limits: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _purge_locked(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if now - e.created_at > self.ttl]
        for k in expired:
            del self._entries[k]
        for ident in [i for i, e in self._limits.items() if now >= e.reset_time]:
            del self._limits[ident]
        self._last_sweep = now
        return len(expired)

    def _maybe_sweep_locked(self, now: float) -> None:
        if now - self._last_sweep < self.cleanup_interval:
            return
        removed = self._purge_locked(now)
        if removed:
            logger.debug("Cache sweep removed %d expired entries", removed)

    # ── Cache ────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[Any]:
        k = _normalize_key(key)
        with self._lock:
            entry = self._entries.get(k)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.ttl:
                del self._entries[k]
                return None
            return entry.data

    def set(self, key: str, data: Any) -> None:
        now = self._clock()
        with self._lock:
            self._maybe_sweep_locked(now)
            self._entries[_normalize_key(key)] = CacheEntry(data=data, created_at=now)

    def cleanup(self) -> int:
        """Drop expired cache entries and stale rate-limit windows. Returns entries removed."""
        now = self._clock()
        with self._lock:
            removed = self._purge_locked(now)
        if removed:
            logger.debug("Cache cleanup removed %d expired entries", removed)
        return removed

    def limit_count(self) -> int:
        """Number of identifiers with a tracked rate-limit window."""
        with self._lock:
            return len(self._limits)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._limits.clear()

    def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            entries = [
                {"domain": k, "age": int((now - e.created_at) // 60)}
                for k, e in self._entries.items()
            ]
        return {"size": len(entries), "entries": entries}

    # ── Rate limiter ─────────────────────────────────────────────────

    def check_rate_limit(self, identifier: str = "global") -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._maybe_sweep_locked(now)
            entry = self._limits.get(identifier)

            if entry is None or now >= entry.reset_time:
                self._limits[identifier] = RateLimitEntry(count=1, reset_time=now + self.window)
                return RateLimitDecision(allowed=True)

            if entry.count >= self.max_requests:
                retry_after = max(1, math.ceil(entry.reset_time - now))
                logger.info("Rate limit hit for %s, retry after %ds", identifier, retry_after)
                return RateLimitDecision(allowed=False, retry_after=retry_after)

            entry.count += 1
            return RateLimitDecision(allowed=True)
