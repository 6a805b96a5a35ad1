"""Key-value backend contract, every storage backend implements this."""

import builtins
from abc import ABC, abstractmethod
from typing import ClassVar


class KeyValueBackend(ABC):
    """Raw key-value primitives over a concrete store.

    Strings, sorted sets, sets and lists, loosely after the redis data types so
    that the redis backend is a thin wrapper and the others emulate it.
    Sorted set ranks are ascending by score, ties broken by member.
    Range stops are inclusive and negative indexes count from the end.
    """

    name: ClassVar[str] = "base"
    # Library specific errors that mean "the store could not be reached, try again"
    transient_errors: ClassVar[tuple[type[BaseException], ...]] = ()

    # region Strings
    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Get a string value, None if absent or expired."""

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Set a string value, optionally expiring after ttl_seconds."""

    @abstractmethod
    async def delete(self, *keys: str) -> int:
        """Delete keys of any type, return how many existed."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check a key of any type exists."""

    @abstractmethod
    async def keys(self, prefix: str) -> list[str]:
        """All live keys starting with prefix."""

    @abstractmethod
    async def mget(self, keys: list[str]) -> list[str | None]:
        """Get several string values at once."""

    @abstractmethod
    async def expire(self, key: str, ttl_seconds: int) -> bool:
        """Set a ttl on an existing key."""

    @abstractmethod
    async def incr(self, key: str) -> int:
        """Atomically increment an integer string value, missing keys start at 0."""

    # region Sorted sets
    @abstractmethod
    async def zadd(self, key: str, member: str, score: float) -> None:
        """Add or update a member's score."""

    @abstractmethod
    async def zrem(self, key: str, *members: str) -> int:
        """Remove members, return how many were present."""

    @abstractmethod
    async def zcard(self, key: str) -> int:
        """Number of members."""

    @abstractmethod
    async def zrange_by_score(self, key: str, min_score: float, max_score: float) -> list[str]:
        """Members with min_score <= score <= max_score, ascending."""

    @abstractmethod
    async def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        """Members by rank, highest score first."""

    @abstractmethod
    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        """Remove members by ascending rank, return how many were removed."""

    @abstractmethod
    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        """Remove members with min_score <= score <= max_score."""

    # region Sets
    @abstractmethod
    async def sadd(self, key: str, *members: str) -> int:
        """Add members, return how many were new."""

    @abstractmethod
    async def srem(self, key: str, *members: str) -> int:
        """Remove members, return how many were present."""

    @abstractmethod
    async def smembers(self, key: str) -> builtins.set[str]:
        """All members."""

    # region Lists
    @abstractmethod
    async def lpush(self, key: str, *values: str) -> int:
        """Push values to the head, return the new length."""

    @abstractmethod
    async def lrem(self, key: str, value: str) -> int:
        """Remove every occurrence of value."""

    @abstractmethod
    async def ltrim(self, key: str, start: int, stop: int) -> None:
        """Keep only the given index range."""

    @abstractmethod
    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        """Values in the given index range."""

    # region Lifecycle
    @abstractmethod
    async def ping(self) -> bool:
        """Check the store is reachable."""

    async def close(self) -> None:  # noqa: B027 Optional for backends without connections
        """Release any connections."""


def normalise_range(length: int, start: int, stop: int) -> tuple[int, int]:
    """Turn an inclusive redis style (start, stop) into python slice bounds."""
    if start < 0:
        start = max(length + start, 0)
    if stop < 0:
        stop = length + stop
    stop = min(stop, length - 1)
    if start > stop:
        return 0, 0
    return start, stop + 1
