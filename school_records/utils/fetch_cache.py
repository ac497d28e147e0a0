# =============================================
# File: school_records/utils/fetch_cache.py
# Purpose: Session-side fetch cache with in-flight request de-duplication
# =============================================
from __future__ import annotations

import asyncio
import os
import time
from typing import Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")

# Default freshness window for session caches (seconds)
DEFAULT_TTL = float(os.getenv("CLIENT_CACHE_TTL_SECONDS", "300"))


def _consume_exception(task: "asyncio.Task") -> None:
    # every awaiter may have been cancelled; mark the failure as retrieved
    if not task.cancelled():
        task.exception()


class RequestDeduplicator(Generic[T]):
    """
    Cache + single-flight for one client session.

    Resolution order in `fetch_cached`:
      1) fresh cached value (age <= ttl) -> returned, loader not called
      2) a fetch for the key is already running -> await that one
      3) start the loader; on success store (value, now); on failure cache nothing
    The in-flight marker is dropped as soon as the fetch settles, so a failed
    key can be retried right away. Everything runs on one event loop; the maps
    are only touched between awaits.
    """

    def __init__(self, ttl: float = DEFAULT_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._values: Dict[str, Tuple[T, float]] = {}
        self._in_flight: Dict[str, "asyncio.Task[T]"] = {}

    def peek(self, key: str, ttl: Optional[float] = None) -> Optional[T]:
        """Fresh cached value or None; never starts a fetch."""
        item = self._values.get(key)
        if item is None:
            return None
        value, stored_at = item
        if self._clock() - stored_at <= (self.ttl if ttl is None else ttl):
            return value
        return None

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def fetch_cached(
        self,
        loader: Callable[[], Awaitable[T]],
        key: str,
        ttl: Optional[float] = None,
    ) -> T:
        item = self._values.get(key)
        if item is not None and self._clock() - item[1] <= (self.ttl if ttl is None else ttl):
            return item[0]

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._run(key, loader))
            task.add_done_callback(_consume_exception)
            self._in_flight[key] = task
        # shield: one cancelled caller must not cancel the fetch shared by the others
        return await asyncio.shield(task)

    async def _run(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        me = asyncio.current_task()
        try:
            value = await loader()
            # clear_all() during the fetch drops the marker: result is returned, not stored
            if self._in_flight.get(key) is me:
                self._values[key] = (value, self._clock())
            return value
        finally:
            if self._in_flight.get(key) is me:
                del self._in_flight[key]

    def invalidate(self, key: str) -> None:
        """Drop the cached value for `key`; a running fetch is left alone."""
        self._values.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        dead = [k for k in self._values if k.startswith(prefix)]
        for k in dead:
            self._values.pop(k, None)
        return len(dead)

    def clear_all(self) -> None:
        self._values.clear()
        self._in_flight.clear()
