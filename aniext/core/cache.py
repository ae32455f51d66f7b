"""
Extraction Cache - TTL cache with in-flight request coalescing.

Results are keyed by (extension id, capability, canonical arguments),
so two calls share an entry only when every argument matches. While a
fetch for a key is in flight, identical calls wait on the same task
instead of starting their own, and all of them receive the same value
or the same exception. The fetch runs as its own task, so cancelling
one caller never cancels the fetch the other callers are waiting on.
Failures are never stored.
"""

import asyncio
import json
import logging
import time
from typing import Any, Awaitable, Callable, Dict, NamedTuple, Optional, Tuple

from aniext.core.capabilities import CapabilitySpec, ResultShape
from aniext.hosters.registry import cache_ttl_for_url


logger = logging.getLogger(__name__)

CacheKey = Tuple[str, str, str]

DEFAULT_LISTING_TTL = 3600.0
DEFAULT_STREAM_TTL = 600.0


def make_key(extension_id: str, capability: str, args: Dict[str, Any]) -> CacheKey:
    """Build a collision-free key from bound call arguments."""
    return (extension_id, capability, json.dumps(args, sort_keys=True, separators=(",", ":"), default=str))


class CacheEntry(NamedTuple):
    value: Any
    created_at: float
    ttl: float

    def is_fresh(self, now: float) -> bool:
        return now - self.created_at < self.ttl


class CachePolicy:
    """Chooses how long a capability result may be reused."""

    def __init__(
        self,
        listing_ttl: float = DEFAULT_LISTING_TTL,
        stream_ttl: float = DEFAULT_STREAM_TTL,
        enabled: bool = True,
    ):
        self.listing_ttl = listing_ttl
        self.stream_ttl = stream_ttl
        self.enabled = enabled

    def ttl_for(self, capability: CapabilitySpec, args: Dict[str, Any]) -> float:
        """
        TTL in seconds for one call; 0 disables caching.

        Hoster URLs may carry their own override, which wins over the
        capability default.
        """
        if not self.enabled or capability.returns == ResultShape.TEXT:
            return 0.0

        url = args.get("url")
        if isinstance(url, str):
            override = cache_ttl_for_url(url)
            if override is not None:
                return float(override)

        if capability.returns in (ResultShape.STREAM, ResultShape.STREAMS):
            return self.stream_ttl
        return self.listing_ttl


class ExtractionCache:
    """Per-runtime result cache; owned by the dispatcher."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_entries: int = 2048):
        """
        Initialize the cache.

        Args:
            clock: Monotonic time source in seconds
            max_entries: Oldest entries are evicted beyond this size
        """
        self._clock = clock
        self.max_entries = max_entries
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[CacheKey, asyncio.Future] = {}

        self.hits = 0
        self.misses = 0
        self.coalesced = 0

    def peek(self, key: CacheKey) -> Optional[Any]:
        """Return a fresh cached value without fetching."""
        entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(self._clock()):
            return entry.value
        return None

    def _store(self, key: CacheKey, value: Any, ttl: float) -> None:
        self._entries[key] = CacheEntry(value, self._clock(), ttl)
        if len(self._entries) > self.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].created_at)
            del self._entries[oldest]

    async def get_or_fetch(
        self,
        key: CacheKey,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
        store_if: Callable[[Any], bool] = lambda value: True,
    ) -> Tuple[Any, bool]:
        """
        Return a cached value or run ``fetch`` exactly once per key.

        Args:
            key: Cache key from :func:`make_key`
            ttl: Seconds to keep a successful result; 0 disables storing
            fetch: Coroutine factory producing the value
            store_if: Final veto on storing a successful value

        Returns:
            ``(value, served_from_cache)``
        """
        entry = self._entries.get(key)
        if entry is not None:
            if entry.is_fresh(self._clock()):
                self.hits += 1
                return entry.value, True
            del self._entries[key]

        pending = self._inflight.get(key)
        if pending is not None:
            self.coalesced += 1
            return await asyncio.shield(pending), False

        task = asyncio.ensure_future(self._fetch(key, ttl, fetch, store_if))
        task.add_done_callback(lambda done: self._settle(key, done))
        self._inflight[key] = task
        self.misses += 1

        # A cancelled caller stops waiting; the fetch keeps running for the rest
        return await asyncio.shield(task), False

    async def _fetch(
        self,
        key: CacheKey,
        ttl: float,
        fetch: Callable[[], Awaitable[Any]],
        store_if: Callable[[Any], bool],
    ) -> Any:
        value = await fetch()
        if ttl > 0 and store_if(value) and self._inflight.get(key) is asyncio.current_task():
            self._store(key, value, ttl)
        return value

    def _settle(self, key: CacheKey, task: asyncio.Future) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the outcome retrieved so failures nobody awaited do not warn at GC
        if not task.cancelled():
            task.exception()

    def clear(self, extension_id: Optional[str] = None) -> int:
        """
        Drop all entries, or only those of one extension.

        In-flight fetches for the cleared keys are detached: callers already
        waiting still get their outcome, but new calls start a fresh fetch
        and the detached result is never stored.
        """
        if extension_id is None:
            removed = len(self._entries)
            self._entries.clear()
            self._inflight.clear()
        else:
            keys = [k for k in self._entries if k[0] == extension_id]
            for key in keys:
                del self._entries[key]
            removed = len(keys)
            for key in [k for k in self._inflight if k[0] == extension_id]:
                del self._inflight[key]
        logger.debug(f"Cleared {removed} cache entries" + (f" for {extension_id}" if extension_id else ""))
        return removed

    def stats(self) -> Dict[str, int]:
        return {
            "entries": len(self._entries),
            "in_flight": len(self._inflight),
            "hits": self.hits,
            "misses": self.misses,
            "coalesced": self.coalesced,
        }


# Export cache components
__all__ = [
    "CacheKey",
    "CacheEntry",
    "CachePolicy",
    "ExtractionCache",
    "make_key",
    "DEFAULT_LISTING_TTL",
    "DEFAULT_STREAM_TTL",
]
