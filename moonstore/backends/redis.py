"""Networked backend using redis (or anything that speaks the redis protocol)."""

import builtins
import re
from typing import ClassVar

import redis.asyncio as aioredis
from redis import exceptions as redis_exceptions

from moonstore.utils.logger import get_logger

from .base import KeyValueBackend

logger = get_logger(__name__)

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")
SCAN_BATCH_SIZE = 500


def escape_glob(prefix: str) -> str:
    """Escape glob characters so a prefix can go into SCAN MATCH."""
    return _GLOB_SPECIAL.sub(r"\\\1", prefix)


class RedisBackend(KeyValueBackend):
    """Thin async wrapper over one shared redis connection pool."""

    name: ClassVar[str] = "redis"
    transient_errors: ClassVar[tuple[type[BaseException], ...]] = (
        redis_exceptions.ConnectionError,
        redis_exceptions.TimeoutError,
        redis_exceptions.BusyLoadingError,
    )

    def __init__(self, url: str, client: aioredis.Redis | None = None) -> None:
        """Build the client once, the pool multiplexes concurrent calls."""
        self._url = url
        self._client: aioredis.Redis = client or aioredis.from_url(url, decode_responses=True)
        logger.debug("Initialised redis backend for %s", _redact_url(url))

    # region Strings
    async def get(self, key: str) -> str | None:
        return await self._client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self._client.set(key, value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(await self._client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return int(await self._client.exists(key)) == 1

    async def keys(self, prefix: str) -> list[str]:
        pattern = f"{escape_glob(prefix)}*"
        found = [key async for key in self._client.scan_iter(match=pattern, count=SCAN_BATCH_SIZE)]
        return sorted(set(found))

    async def mget(self, keys: list[str]) -> list[str | None]:
        if not keys:
            return []
        return list(await self._client.mget(keys))

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        return bool(await self._client.expire(key, ttl_seconds))

    async def incr(self, key: str) -> int:
        return int(await self._client.incr(key))

    # region Sorted sets
    async def zadd(self, key: str, member: str, score: float) -> None:
        await self._client.zadd(key, {member: score})

    async def zrem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(await self._client.zrem(key, *members))

    async def zcard(self, key: str) -> int:
        return int(await self._client.zcard(key))

    async def zrange_by_score(self, key: str, min_score: float, max_score: float) -> list[str]:
        return list(await self._client.zrangebyscore(key, min_score, max_score))

    async def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        return list(await self._client.zrevrange(key, start, stop))

    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        return int(await self._client.zremrangebyrank(key, start, stop))

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        return int(await self._client.zremrangebyscore(key, min_score, max_score))

    # region Sets
    async def sadd(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(await self._client.sadd(key, *members))

    async def srem(self, key: str, *members: str) -> int:
        if not members:
            return 0
        return int(await self._client.srem(key, *members))

    async def smembers(self, key: str) -> builtins.set[str]:
        return set(await self._client.smembers(key))

    # region Lists
    async def lpush(self, key: str, *values: str) -> int:
        return int(await self._client.lpush(key, *values))

    async def lrem(self, key: str, value: str) -> int:
        return int(await self._client.lrem(key, 0, value))

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        await self._client.ltrim(key, start, stop)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return list(await self._client.lrange(key, start, stop))

    # region Lifecycle
    async def ping(self) -> bool:
        return bool(await self._client.ping())

    async def close(self) -> None:
        await self._client.aclose()


def _redact_url(url: str) -> str:
    """Hide the password part of a redis url for logging."""
    return re.sub(r"//([^:@/]*):[^@/]*@", r"//\1:***@", url)
