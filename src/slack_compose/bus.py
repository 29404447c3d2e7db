from __future__ import annotations

import json
from collections.abc import AsyncIterator, Mapping
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, Protocol

import anyio
import redis.asyncio as redis
from redis.exceptions import RedisError

from .config import Settings
from .logging import get_logger

logger = get_logger(__name__)


class BusError(RuntimeError):
    pass


class EventBus(Protocol):
    def subscribe(
        self, channel: str
    ) -> AbstractAsyncContextManager[AsyncIterator[str]]: ...

    async def push(self, list_name: str, payload: Mapping[str, Any]) -> None: ...


class RedisEventBus:
    """Pub/sub subscriptions plus RPUSH onto work lists, over one Redis pool.

    The underlying ``redis.asyncio`` pool hands each caller its own
    connection, so listeners and dispatchers share one instance without
    locking.
    """

    def __init__(self, client: redis.Redis, *, cleanup_timeout_s: float = 5.0) -> None:
        self._client = client
        self._cleanup_timeout_s = cleanup_timeout_s

    @classmethod
    async def connect(cls, settings: Settings) -> "RedisEventBus":
        client = redis.Redis(
            host=settings.redis_host,
            port=settings.redis_port,
            password=settings.redis_password or None,
            db=settings.redis_db,
            decode_responses=True,
        )
        try:
            await client.ping()
        except RedisError as exc:
            await client.aclose()
            raise BusError(
                f"failed to connect to Redis at {settings.redis_addr}: {exc}"
            ) from exc
        logger.info("bus.connected", addr=settings.redis_addr, db=settings.redis_db)
        return cls(client, cleanup_timeout_s=settings.shutdown_grace_s)

    async def close(self) -> None:
        await self._client.aclose()

    async def push(self, list_name: str, payload: Mapping[str, Any]) -> None:
        try:
            data = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            raise BusError(f"failed to encode payload for {list_name}: {exc}") from exc
        try:
            await self._client.rpush(list_name, data)
        except RedisError as exc:
            raise BusError(f"failed to push to {list_name}: {exc}") from exc

    @asynccontextmanager
    async def subscribe(self, channel: str) -> AsyncIterator[AsyncIterator[str]]:
        pubsub = self._client.pubsub(ignore_subscribe_messages=True)
        try:
            await pubsub.subscribe(channel)
        except RedisError as exc:
            await self._release(pubsub, channel, subscribed=False)
            raise BusError(f"failed to subscribe to {channel}: {exc}") from exc
        try:
            yield _iter_messages(pubsub, channel)
        finally:
            await self._release(pubsub, channel, subscribed=True)

    async def _release(self, pubsub: Any, channel: str, *, subscribed: bool) -> None:
        with anyio.move_on_after(self._cleanup_timeout_s, shield=True):
            try:
                if subscribed:
                    await pubsub.unsubscribe(channel)
                await pubsub.aclose()
            except RedisError as exc:
                logger.warning("bus.unsubscribe_failed", channel=channel, error=str(exc))


async def _iter_messages(pubsub: Any, channel: str) -> AsyncIterator[str]:
    try:
        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message.get("data")
            if isinstance(data, bytes):
                data = data.decode("utf-8", "replace")
            if not isinstance(data, str):
                continue
            yield data
    except RedisError as exc:
        raise BusError(f"subscription to {channel} failed: {exc}") from exc
