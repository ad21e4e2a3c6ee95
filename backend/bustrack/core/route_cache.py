"""TTL memoization of single-pair routing results."""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable

from bustrack.core.geo import round_coordinate
from bustrack.core.models import Coordinate
from bustrack.core.routing_client import RouteResult, RoutingProvider

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60
DEFAULT_PRECISION = 4

CacheKey = tuple[tuple[float, float], tuple[float, float]]


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    result: RouteResult
    created_at: float


class RouteCache:
    """Wraps a RoutingProvider's pair lookup with a rounded-coordinate cache.

    Only successful results are stored. Expired entries are dropped when their
    key is next looked up. Concurrent misses on the same key share one
    provider call, and that call is shielded from caller cancellation so an
    abandoned query still populates the cache for everyone else.
    """

    def __init__(
        self,
        provider: RoutingProvider,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        precision: int = DEFAULT_PRECISION,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.provider = provider
        self.ttl_seconds = ttl_seconds
        self.precision = precision
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}
        self._inflight: dict[CacheKey, asyncio.Task] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    def make_key(self, origin: Coordinate, destination: Coordinate) -> CacheKey:
        return (
            round_coordinate(origin, self.precision),
            round_coordinate(destination, self.precision),
        )

    async def get_route(self, origin: Coordinate, destination: Coordinate) -> RouteResult | None:
        key = self.make_key(origin, destination)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None:
                if self._clock() - entry.created_at < self.ttl_seconds:
                    self.hits += 1
                    return entry.result
                del self._entries[key]
            self.misses += 1
            task = self._inflight.get(key)
            if task is None:
                task = asyncio.create_task(self._fetch(key, origin, destination))
                self._inflight[key] = task

        return await asyncio.shield(task)

    async def _fetch(self, key: CacheKey, origin: Coordinate, destination: Coordinate) -> RouteResult | None:
        result = None
        try:
            result = await self.provider.route_pair(origin, destination)
            return result
        finally:
            async with self._lock:
                self._inflight.pop(key, None)
                if result is not None:
                    self._entries[key] = CacheEntry(key=key, result=result, created_at=self._clock())

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Route cache cleared")

    def stats(self) -> dict:
        return {
            "size": len(self._entries),
            "ttl_seconds": self.ttl_seconds,
            "precision": self.precision,
            "hits": self.hits,
            "misses": self.misses,
            "inflight": len(self._inflight),
        }
