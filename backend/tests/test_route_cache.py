"""Tests for RouteCache memoization."""

import asyncio

from bustrack.core.models import Coordinate
from bustrack.core.route_cache import RouteCache
from fakes import FakeRoutingProvider


class ManualClock:
    def __init__(self) -> None:
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


ORIGIN = Coordinate(28.5672, 77.2100)
DEST = Coordinate(28.6139, 77.2090)


def test_hit_within_ttl_skips_provider():
    provider = FakeRoutingProvider()
    cache = RouteCache(provider, clock=ManualClock())

    async def run():
        first = await cache.get_route(ORIGIN, DEST)
        second = await cache.get_route(ORIGIN, DEST)
        return first, second

    first, second = asyncio.run(run())
    assert first is second
    assert len(provider.calls) == 1
    assert cache.stats()["hits"] == 1


def test_coordinates_differing_beyond_fourth_decimal_share_entry():
    provider = FakeRoutingProvider()
    cache = RouteCache(provider, clock=ManualClock())

    async def run():
        await cache.get_route(Coordinate(28.56721, 77.21003), Coordinate(28.61392, 77.20904))
        await cache.get_route(Coordinate(28.56724, 77.20998), Coordinate(28.61388, 77.20896))

    asyncio.run(run())
    assert len(provider.calls) == 1


def test_expired_entry_refetched_and_evicted():
    provider = FakeRoutingProvider()
    clock = ManualClock()
    cache = RouteCache(provider, ttl_seconds=300, clock=clock)

    async def run():
        await cache.get_route(ORIGIN, DEST)
        clock.t += 299
        await cache.get_route(ORIGIN, DEST)
        clock.t += 2
        await cache.get_route(ORIGIN, DEST)

    asyncio.run(run())
    assert len(provider.calls) == 2
    assert cache.stats()["size"] == 1


def test_failures_are_not_cached():
    provider = FakeRoutingProvider(fail=True)
    cache = RouteCache(provider, clock=ManualClock())

    async def run():
        a = await cache.get_route(ORIGIN, DEST)
        provider.fail = False
        b = await cache.get_route(ORIGIN, DEST)
        return a, b

    a, b = asyncio.run(run())
    assert a is None
    assert b is not None
    assert len(provider.calls) == 2


def test_concurrent_misses_share_one_call():
    class SlowProvider(FakeRoutingProvider):
        async def route(self, waypoints):
            await asyncio.sleep(0.01)
            return await super().route(waypoints)

    provider = SlowProvider()
    cache = RouteCache(provider, clock=ManualClock())

    async def run():
        return await asyncio.gather(*(cache.get_route(ORIGIN, DEST) for _ in range(5)))

    results = asyncio.run(run())
    assert len(provider.calls) == 1
    assert all(r is results[0] for r in results)


def test_abandoned_lookup_still_populates_cache():
    release = None

    class BlockingProvider(FakeRoutingProvider):
        async def route(self, waypoints):
            await release.wait()
            return await super().route(waypoints)

    provider = BlockingProvider()
    cache = RouteCache(provider, clock=ManualClock())

    async def run():
        nonlocal release
        release = asyncio.Event()
        caller = asyncio.create_task(cache.get_route(ORIGIN, DEST))
        await asyncio.sleep(0)
        caller.cancel()
        release.set()
        # Let the shielded fetch finish
        for _ in range(5):
            await asyncio.sleep(0)
        return await cache.get_route(ORIGIN, DEST)

    result = asyncio.run(run())
    assert result is not None
    assert len(provider.calls) == 1


def test_clear_and_stats():
    provider = FakeRoutingProvider()
    cache = RouteCache(provider, clock=ManualClock())
    asyncio.run(cache.get_route(ORIGIN, DEST))
    assert cache.stats()["size"] == 1
    cache.clear()
    assert cache.stats()["size"] == 0
