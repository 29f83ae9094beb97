"""
================================================================================
GameDiss - Single-Flight TTL Cache
================================================================================
In-memory cache used for both title resolution and per-(id, field) source
data.

  - TTL per entry, chosen from the loaded value (ttl_for)
  - Bounded size with LRU eviction
  - Single flight: at most one load per key at any time. Concurrent callers
    for the same key await the in-flight load instead of starting another.
  - Failed loads are not cached; the error reaches every waiter
  - The load runs as a task owned by the cache: a caller that is cancelled
    (deadline, client gone) stops waiting, other callers still get the value

All methods run on one event loop; no thread locking is needed.
================================================================================
"""

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import replace
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, TypeVar

from .models import CacheEntry


logger = logging.getLogger(__name__)

K = TypeVar('K', bound=Hashable)
V = TypeVar('V')


class SingleFlightCache(Generic[K, V]):
    """TTL + LRU cache whose loads are de-duplicated per key."""

    def __init__(
        self,
        name: str,
        ttl: float = 300.0,
        max_size: int = 10000,
        ttl_for: Optional[Callable[[V], float]] = None,
        clock: Callable[[], float] = time.time
    ):
        """
        Args:
            name: Label used in logs and stats
            ttl: Default time-to-live in seconds
            max_size: Maximum number of entries before LRU eviction
            ttl_for: Optional function choosing the TTL for a loaded value
            clock: Time source (seconds)
        """
        self.name = name
        self.ttl = ttl
        self.max_size = max_size
        self._ttl_for = ttl_for
        self._clock = clock
        self._entries: "OrderedDict[K, CacheEntry[V]]" = OrderedDict()
        self._in_flight: Dict[K, asyncio.Task] = {}
        self.hits = 0
        self.misses = 0
        self.loads = 0
        self.joined = 0

    def peek(self, key: K) -> Optional[V]:
        """Return an unexpired cached value without loading."""
        entry = self._entries.get(key)
        if entry is None or entry.expires_at <= self._clock():
            return None
        return entry.value

    async def get_or_load(self, key: K, loader: Callable[[], Awaitable[V]]) -> V:
        """
        Get a cached value, or load it through the key's single-flight slot.

        Args:
            key: Cache key
            loader: Zero-argument coroutine function producing the value

        Returns:
            Cached or freshly loaded value

        Raises:
            Whatever the loader raised (for the caller and all joiners)
        """
        entry = self._entries.get(key)
        if entry is not None and entry.expires_at > self._clock():
            self._entries.move_to_end(key)
            self.hits += 1
            return entry.value

        task = self._in_flight.get(key)
        if task is not None:
            self.joined += 1
            logger.debug(f"{self.name}: joining in-flight load for {key!r}")
        else:
            self.misses += 1
            task = self._start_load(key, loader, entry)

        # The load belongs to the cache; cancelling one caller only stops its wait
        return await asyncio.shield(task)

    def _start_load(
        self,
        key: K,
        loader: Callable[[], Awaitable[V]],
        stale: Optional[CacheEntry[V]]
    ) -> "asyncio.Task[V]":
        if stale is not None:
            self._entries[key] = replace(stale, refresh_in_flight=True)

        self.loads += 1
        task = asyncio.ensure_future(loader())
        self._in_flight[key] = task
        # Registered before any waiter, so the value is stored before they resume
        task.add_done_callback(lambda done: self._finish_load(key, done))
        return task

    def _finish_load(self, key: K, task: "asyncio.Task[V]"):
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

        if task.cancelled():
            self._clear_refresh_flag(key)
            return

        error = task.exception()
        if error is not None:
            logger.debug(f"{self.name}: load for {key!r} failed: {error!r}")
            self._clear_refresh_flag(key)
            return

        self._store(key, task.result())

    def cancel_pending(self) -> int:
        """
        Cancel every in-flight load (used on shutdown).

        Returns:
            Number of loads cancelled
        """
        pending = [task for task in self._in_flight.values() if not task.done()]
        for task in pending:
            task.cancel()
        return len(pending)

    def _clear_refresh_flag(self, key: K):
        entry = self._entries.get(key)
        if entry is not None and entry.refresh_in_flight:
            self._entries[key] = replace(entry, refresh_in_flight=False)

    def _store(self, key: K, value: V):
        ttl = self._ttl_for(value) if self._ttl_for else self.ttl
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl)
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"{self.name}: evicted {evicted!r}")

    def invalidate(self, key: K):
        self._entries.pop(key, None)

    def clear(self):
        count = len(self._entries)
        self._entries.clear()
        logger.info(f"{self.name}: cache cleared, {count} entries removed")

    def prune_expired(self) -> int:
        """
        Remove expired entries.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [
            key for key, entry in self._entries.items()
            if entry.expires_at <= now and not entry.refresh_in_flight
        ]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info(f"{self.name}: pruned {len(expired)} expired entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> Dict[str, int]:
        now = self._clock()
        valid = sum(1 for entry in self._entries.values() if entry.expires_at > now)
        return {
            'total_entries': len(self._entries),
            'valid_entries': valid,
            'expired_entries': len(self._entries) - valid,
            'in_flight': len(self._in_flight),
            'hits': self.hits,
            'misses': self.misses,
            'loads': self.loads,
            'joined': self.joined,
        }
