"""
In-memory quote caches.

TTLCache is the basic single-TTL cache (lazy expiry on read).
TwoTierCache keeps entries usable past their fresh window until a stale
deadline, and can serve the last good payload when the upstream fails.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from portfolio_tracker.domain.models import Freshness

logger = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    value: T
    stored_at: float
    fresh_until: float
    stale_until: float

    def state(self, now: float) -> Freshness:
        if now > self.stale_until:
            return Freshness.EXPIRED
        if now > self.fresh_until:
            return Freshness.STALE
        return Freshness.FRESH

    def age_seconds(self, now: float) -> float:
        return max(0.0, now - self.stored_at)


@dataclass(frozen=True)
class CacheHit(Generic[T]):
    value: T
    state: Freshness
    age_seconds: float
    stored_at: float

    @property
    def is_stale(self) -> bool:
        return self.state is Freshness.STALE


@dataclass(frozen=True)
class CachedResult(Generic[T]):
    """Value returned by a cache-backed lookup with its provenance."""
    value: T
    cached: bool = False
    stale: bool = False


class _CacheStats:
    def __init__(self):
        self.reset()

    def reset(self) -> None:
        self.hits = 0
        self.misses = 0
        self.stale_hits = 0
        self.total_requests = 0

    def as_dict(self, size: int) -> Dict[str, Any]:
        total = self.total_requests
        hit_rate = (self.hits + self.stale_hits) / total * 100 if total else 0.0
        fresh_rate = self.hits / total * 100 if total else 0.0
        served = self.hits + self.stale_hits
        return {
            "hits": self.hits,
            "misses": self.misses,
            "stale_hits": self.stale_hits,
            "total_requests": total,
            "size": size,
            "hit_rate": round(hit_rate, 2),
            "fresh_hit_rate": round(fresh_rate, 2),
            "staleness": round(self.stale_hits / served * 100, 2) if served else 0.0,
        }


class TTLCache:
    """Key/value cache with a single TTL per entry."""

    def __init__(self, clock: Clock = time.time):
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self._clock = clock
        self._stats = _CacheStats()

    def set(self, key: str, value: Any, ttl_minutes: float) -> None:
        now = self._clock()
        deadline = now + ttl_minutes * 60
        self._entries[key] = CacheEntry(value, now, deadline, deadline)

    def get(self, key: str) -> Optional[Any]:
        self._stats.total_requests += 1
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None
        if entry.state(self._clock()) is Freshness.EXPIRED:
            del self._entries[key]
            self._stats.misses += 1
            return None
        self._stats.hits += 1
        return entry.value

    def sweep(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.state(now) is Freshness.EXPIRED]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._stats.reset()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return self._stats.as_dict(len(self._entries))

    def get_status(self) -> Dict[str, Dict[str, Any]]:
        now = self._clock()
        return {
            key: {
                "age_seconds": entry.age_seconds(now),
                "expired": entry.state(now) is Freshness.EXPIRED,
            }
            for key, entry in self._entries.items()
        }


class TwoTierCache:
    """
    Cache with a fresh window and a longer stale window.

    FRESH entries are served as-is, STALE entries are usable as a degraded
    fallback, EXPIRED entries are evicted on read and never returned.
    """

    def __init__(
        self,
        default_fresh_minutes: float = 5,
        default_stale_minutes: float = 15,
        clock: Clock = time.time,
    ):
        if default_stale_minutes < default_fresh_minutes:
            raise ValueError("Stale window must not be shorter than fresh window")
        self._entries: Dict[str, CacheEntry[Any]] = {}
        self._refreshing: Dict[str, asyncio.Task] = {}
        self._default_fresh = default_fresh_minutes
        self._default_stale = default_stale_minutes
        self._clock = clock
        self._stats = _CacheStats()

    def set(
        self,
        key: str,
        value: Any,
        fresh_minutes: Optional[float] = None,
        stale_minutes: Optional[float] = None,
        stored_at: Optional[float] = None,
    ) -> None:
        """
        Store `value`. Windows are measured from `stored_at` (default now),
        so data derived from an older payload keeps that payload's age.
        """
        fresh = self._default_fresh if fresh_minutes is None else fresh_minutes
        stale = self._default_stale if stale_minutes is None else stale_minutes
        origin = self._clock() if stored_at is None else stored_at
        self._entries[key] = CacheEntry(
            value=value,
            stored_at=origin,
            fresh_until=origin + fresh * 60,
            stale_until=origin + max(stale, fresh) * 60,
        )

    def lookup(self, key: str) -> Optional[CacheHit[Any]]:
        self._stats.total_requests += 1
        entry = self._entries.get(key)
        if entry is None:
            self._stats.misses += 1
            return None

        now = self._clock()
        state = entry.state(now)
        if state is Freshness.EXPIRED:
            del self._entries[key]
            self._stats.misses += 1
            return None

        if state is Freshness.STALE:
            self._stats.stale_hits += 1
        else:
            self._stats.hits += 1
        return CacheHit(entry.value, state, entry.age_seconds(now), entry.stored_at)

    def get(self, key: str) -> Optional[Any]:
        hit = self.lookup(key)
        return hit.value if hit is not None else None

    async def get_or_fetch(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        fresh_minutes: Optional[float] = None,
        stale_minutes: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """
        Serve fresh data from cache, otherwise refresh through `fetch`.

        Concurrent callers for the same key share one refresh. A stale
        entry is returned immediately while the refresh runs in the
        background; with nothing cached the caller waits for the refresh.
        """
        hit = self.lookup(key)
        if hit is not None and not hit.is_stale:
            return hit.value

        task = self._refresh_task(key, fetch, fresh_minutes, stale_minutes, timeout)
        if hit is not None:
            return hit.value
        return await asyncio.shield(task)

    async def refresh(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        fresh_minutes: Optional[float] = None,
        stale_minutes: Optional[float] = None,
        timeout: Optional[float] = None,
    ) -> T:
        """Fetch and store `key`, joining a refresh already in flight."""
        return await asyncio.shield(self._refresh_task(key, fetch, fresh_minutes, stale_minutes, timeout))

    def _refresh_task(self, key, fetch, fresh_minutes, stale_minutes, timeout) -> asyncio.Task:
        task = self._refreshing.get(key)
        if task is None:
            task = asyncio.ensure_future(self._refresh(key, fetch, fresh_minutes, stale_minutes, timeout))
            task.add_done_callback(_log_refresh_failure)
            self._refreshing[key] = task
        return task

    async def fetch_with_fallback(
        self,
        key: str,
        fetch: Callable[[], Awaitable[T]],
        fresh_minutes: Optional[float] = None,
        stale_minutes: Optional[float] = None,
    ) -> CachedResult[T]:
        """
        Refresh through `fetch` unless a fresh entry exists.

        When the upstream call fails, the last successful payload is
        returned marked stale if it is still inside its stale window.
        With nothing cached the failure propagates.
        """
        hit = self.lookup(key)
        if hit is not None and not hit.is_stale:
            return CachedResult(hit.value, cached=True, stale=False)

        try:
            value = await fetch()
        except Exception as exc:
            if hit is None:
                raise
            logger.warning("Serving stale cache entry %s after upstream failure: %s", key, exc)
            return CachedResult(hit.value, cached=True, stale=True)

        self.set(key, value, fresh_minutes, stale_minutes)
        return CachedResult(value, cached=False, stale=False)

    async def _refresh(self, key, fetch, fresh_minutes, stale_minutes, timeout):
        # The deadline cancels the upstream call; shielded waiters get the TimeoutError.
        try:
            if timeout is None:
                value = await fetch()
            else:
                value = await asyncio.wait_for(fetch(), timeout=timeout)
            self.set(key, value, fresh_minutes, stale_minutes)
            return value
        finally:
            self._refreshing.pop(key, None)

    def sweep(self) -> int:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.state(now) is Freshness.EXPIRED]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()
        self._refreshing.clear()
        self._stats.reset()

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        return self._stats.as_dict(len(self._entries))


def _log_refresh_failure(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Cache refresh failed: %r", exc)
