"""Tests for the extraction cache and its TTL policy."""

import asyncio

import pytest

from aniext.core.cache import CachePolicy, ExtractionCache, make_key
from aniext.core.capabilities import get_capability


class ManualClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class TestMakeKey:
    def test_argument_order_does_not_matter(self):
        assert make_key("ext", "search", {"query": "a", "page": 1}) == make_key("ext", "search", {"page": 1, "query": "a"})

    def test_distinct_arguments_never_collide(self):
        assert make_key("ext", "search", {"query": "a|1"}) != make_key("ext", "search", {"query": "a", "page": 1})
        assert make_key("ext-a", "search", {}) != make_key("ext-b", "search", {})


class TestCachePolicy:
    def test_listing_and_stream_ttls(self):
        policy = CachePolicy(listing_ttl=100, stream_ttl=10)
        assert policy.ttl_for(get_capability("search"), {"query": "x", "page": 1}) == 100
        assert policy.ttl_for(get_capability("getStreams"), {"anime_id": "a", "episode_id": "e"}) == 10

    def test_text_results_are_never_cached(self):
        assert CachePolicy().ttl_for(get_capability("decryptStream"), {"data": "x"}) == 0

    def test_hoster_override(self):
        policy = CachePolicy(stream_ttl=10)
        extract = get_capability("extractStream")
        assert policy.ttl_for(extract, {"url": "https://dood.re/e/abc"}) == 0
        assert policy.ttl_for(extract, {"url": "https://voe.sx/e/abc"}) == 10

    def test_disabled(self):
        assert CachePolicy(enabled=False).ttl_for(get_capability("search"), {"query": "x", "page": 1}) == 0


class TestExtractionCache:
    @pytest.mark.asyncio
    async def test_concurrent_identical_calls_fetch_once(self):
        cache = ExtractionCache()
        gate = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            await gate.wait()
            return ["result"]

        key = make_key("ext", "search", {"query": "a"})
        first = asyncio.create_task(cache.get_or_fetch(key, 60, fetch))
        second = asyncio.create_task(cache.get_or_fetch(key, 60, fetch))
        await asyncio.sleep(0)
        gate.set()

        assert await first == (["result"], False)
        assert await second == (["result"], False)
        assert calls == [1]
        assert cache.stats()["coalesced"] == 1

    @pytest.mark.asyncio
    async def test_waiters_share_the_failure(self):
        cache = ExtractionCache()
        gate = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            await gate.wait()
            raise ValueError("upstream down")

        key = make_key("ext", "search", {"query": "a"})
        tasks = [asyncio.create_task(cache.get_or_fetch(key, 60, fetch)) for _ in range(3)]
        await asyncio.sleep(0)
        gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, ValueError) for r in results)
        assert calls == [1]
        assert cache.stats()["entries"] == 0

    @pytest.mark.asyncio
    async def test_cancelling_the_first_caller_keeps_the_fetch(self):
        cache = ExtractionCache()
        gate = asyncio.Event()
        calls = []

        async def fetch():
            calls.append(1)
            await gate.wait()
            return "value"

        key = make_key("ext", "search", {"query": "a"})
        first = asyncio.create_task(cache.get_or_fetch(key, 60, fetch))
        second = asyncio.create_task(cache.get_or_fetch(key, 60, fetch))
        await asyncio.sleep(0)
        first.cancel()
        gate.set()

        assert await second == ("value", False)
        with pytest.raises(asyncio.CancelledError):
            await first
        assert calls == [1]
        assert cache.peek(key) == "value"

    @pytest.mark.asyncio
    async def test_clear_detaches_in_flight_fetch(self):
        cache = ExtractionCache()
        gate = asyncio.Event()

        async def slow_fetch():
            await gate.wait()
            return "old"

        async def fresh_fetch():
            return "new"

        key = make_key("ext", "search", {"query": "a"})
        stale = asyncio.create_task(cache.get_or_fetch(key, 60, slow_fetch))
        await asyncio.sleep(0)
        cache.clear("ext")

        assert cache.stats()["in_flight"] == 0
        assert await cache.get_or_fetch(key, 60, fresh_fetch) == ("new", False)
        gate.set()
        assert await stale == ("old", False)
        assert cache.peek(key) == "new"

    @pytest.mark.asyncio
    async def test_entries_expire(self):
        clock = ManualClock()
        cache = ExtractionCache(clock=clock)
        counter = iter(range(10))

        async def fetch():
            return next(counter)

        key = make_key("ext", "getPopular", {"page": 1})
        assert await cache.get_or_fetch(key, 30, fetch) == (0, False)
        clock.now = 29
        assert await cache.get_or_fetch(key, 30, fetch) == (0, True)
        clock.now = 30
        assert await cache.get_or_fetch(key, 30, fetch) == (1, False)

    @pytest.mark.asyncio
    async def test_zero_ttl_is_not_stored(self):
        cache = ExtractionCache()
        counter = iter(range(10))

        async def fetch():
            return next(counter)

        key = make_key("ext", "extractStream", {"url": "https://dood.re/e/x"})
        assert await cache.get_or_fetch(key, 0, fetch) == (0, False)
        assert await cache.get_or_fetch(key, 0, fetch) == (1, False)

    @pytest.mark.asyncio
    async def test_store_if_veto(self):
        cache = ExtractionCache()

        async def fetch():
            return None

        key = make_key("ext", "extractStream", {"url": "https://x.example/"})
        await cache.get_or_fetch(key, 60, fetch, store_if=lambda value: value is not None)
        assert cache.peek(key) is None
        assert cache.stats()["entries"] == 0

    @pytest.mark.asyncio
    async def test_clear_by_extension(self):
        cache = ExtractionCache()

        async def fetch():
            return "v"

        for ext_id in ("ext-a", "ext-b"):
            await cache.get_or_fetch(make_key(ext_id, "search", {}), 60, fetch)

        assert cache.clear("ext-a") == 1
        assert cache.peek(make_key("ext-b", "search", {})) == "v"
        assert cache.clear() == 1

    @pytest.mark.asyncio
    async def test_oldest_entry_is_evicted(self):
        clock = ManualClock()
        cache = ExtractionCache(clock=clock, max_entries=2)

        async def fetch():
            return clock.now

        for step in range(3):
            clock.now = float(step)
            await cache.get_or_fetch(make_key("ext", "search", {"page": step}), 60, fetch)

        assert cache.peek(make_key("ext", "search", {"page": 0})) is None
        assert cache.peek(make_key("ext", "search", {"page": 2})) == 2.0
