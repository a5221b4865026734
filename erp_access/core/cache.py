"""
Best-effort Redis cache.

Identity snapshots and list responses are cached here. The cache is an
accelerator only: every failure (connection, timeout, undecodable payload) is
logged and reported as a miss, never raised to the caller.
"""
import asyncio
import json
from typing import Any

import redis.asyncio as redis
from redis.exceptions import RedisError

from erp_access.core import config
from erp_access.utils import get_logger


log = get_logger(__name__)

KEY_PREFIX = "cache:"


class Cache:
    """JSON cache over a ``redis.asyncio`` client with per-call timeouts."""

    def __init__(self, client: Any, timeout: float = config.CACHE_TIMEOUT_SECONDS):
        self._client = client
        self._timeout = timeout

    @staticmethod
    def _key(key: str) -> str:
        return f"{KEY_PREFIX}{key}"

    async def get_json(self, key: str) -> Any | None:
        try:
            raw = await asyncio.wait_for(self._client.get(self._key(key)), self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            log.info("Cache read failed for %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            log.info("Discarding undecodable cache entry %s", key)
            return None

    async def get_many_json(self, *keys: str) -> list[Any | None]:
        """One round trip for several keys; missing, failed or undecodable entries are ``None``."""
        try:
            raws = await asyncio.wait_for(self._client.mget([self._key(k) for k in keys]), self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            log.info("Cache read failed for %s: %s", keys, e)
            return [None] * len(keys)
        values = []
        for key, raw in zip(keys, raws):
            try:
                values.append(None if raw is None else json.loads(raw))
            except ValueError:
                log.info("Discarding undecodable cache entry %s", key)
                values.append(None)
        return values

    async def incr(self, key: str, ttl: int) -> int | None:
        """Increment a counter and refresh its expiry; ``None`` when the cache is unreachable."""
        try:
            value = await asyncio.wait_for(self._client.incr(self._key(key)), self._timeout)
            await asyncio.wait_for(self._client.expire(self._key(key), ttl), self._timeout)
            return value
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            log.info("Cache increment failed for %s: %s", key, e)
            return None

    async def set_json(self, key: str, value: Any, ttl: int) -> None:
        try:
            payload = json.dumps(value)
            await asyncio.wait_for(self._client.set(self._key(key), payload, ex=ttl), self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError, TypeError) as e:
            log.info("Cache write failed for %s: %s", key, e)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        try:
            await asyncio.wait_for(self._client.delete(*(self._key(k) for k in keys)), self._timeout)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            log.info("Cache delete failed for %s: %s", keys, e)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern, e.g. ``users:<org>:*``."""
        async def _collect() -> list[str]:
            return [key async for key in self._client.scan_iter(match=self._key(pattern), count=100)]

        try:
            keys = await asyncio.wait_for(_collect(), self._timeout)
            if keys:
                await asyncio.wait_for(self._client.delete(*keys), self._timeout)
            return len(keys)
        except (RedisError, OSError, asyncio.TimeoutError) as e:
            log.info("Cache pattern delete failed for %s: %s", pattern, e)
            return 0

    async def close(self) -> None:
        try:
            await self._client.aclose()
        except (RedisError, OSError) as e:
            log.info("Error closing cache connection: %s", e)


def create_cache(url: str = config.REDIS_URL) -> Cache:
    """
    Build a cache bound to the Redis server at ``url``.

    The connection is opened lazily; an unreachable server only shows up as
    cache misses.
    """
    client = redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=config.CACHE_TIMEOUT_SECONDS,
        socket_connect_timeout=config.CACHE_TIMEOUT_SECONDS,
        max_connections=20,
    )
    log.info("Cache configured for %s", url)
    return Cache(client)
