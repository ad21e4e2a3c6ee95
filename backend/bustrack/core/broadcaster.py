"""Redis pub/sub broadcaster for per-vehicle progress updates."""

import asyncio
import logging

import orjson
import redis.asyncio as aioredis

from bustrack.core.ports import ProgressPublisher

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "bus:"
STATE_KEY = "bus:{vehicle_id}:progress"


def channel_for(vehicle_id: str) -> str:
    return f"{CHANNEL_PREFIX}{vehicle_id}"


class Broadcaster(ProgressPublisher):
    """Publishes payloads to Redis and fans out to in-process WebSocket subscribers."""

    def __init__(self, redis_url: str | None = None) -> None:
        self.redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        # vehicle_id -> subscriber queues
        self._subscribers: dict[str, set[asyncio.Queue]] = {}

    async def connect(self) -> None:
        if self.redis_url:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=False)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()

    async def publish(self, vehicle_id: str, payload: dict) -> None:
        """Publish one payload to the vehicle's channel and local subscribers."""
        data = orjson.dumps(payload)

        if self._redis:
            try:
                # Only progress snapshots are replayed to new connections
                if payload.get("type") == "progress":
                    await self._redis.set(STATE_KEY.format(vehicle_id=vehicle_id), data)
                await self._redis.publish(channel_for(vehicle_id), data)
            except Exception:
                logger.exception("Failed to publish to Redis for vehicle %s", vehicle_id)

        subscribers = self._subscribers.get(vehicle_id)
        if not subscribers:
            return
        dead = set()
        for q in subscribers:
            try:
                q.put_nowait(data)
            except asyncio.QueueFull:
                dead.add(q)
        subscribers -= dead
        if dead:
            logger.debug("Dropped %d slow subscribers for vehicle %s", len(dead), vehicle_id)

    async def get_current_state(self, vehicle_id: str) -> bytes | None:
        """Latest progress snapshot for a vehicle from Redis."""
        if self._redis:
            try:
                return await self._redis.get(STATE_KEY.format(vehicle_id=vehicle_id))
            except Exception:
                logger.exception("Failed to get state from Redis")
        return None

    def subscribe(self, vehicle_id: str) -> asyncio.Queue:
        q: asyncio.Queue = asyncio.Queue(maxsize=10)
        self._subscribers.setdefault(vehicle_id, set()).add(q)
        return q

    def unsubscribe(self, vehicle_id: str, q: asyncio.Queue) -> None:
        subscribers = self._subscribers.get(vehicle_id)
        if subscribers is None:
            return
        subscribers.discard(q)
        if not subscribers:
            del self._subscribers[vehicle_id]

    def subscriber_count(self, vehicle_id: str) -> int:
        return len(self._subscribers.get(vehicle_id, ()))
