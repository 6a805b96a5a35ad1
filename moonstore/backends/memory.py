"""In-process backend, for single instance deployments and tests."""

import builtins
import heapq
import time
from collections.abc import Callable, Iterator
from typing import ClassVar

from sortedcontainers import SortedList

from moonstore.utils.logger import get_logger

from .base import KeyValueBackend, normalise_range

logger = get_logger(__name__)


class _SortedSet:
    """Members ordered by (score, member), with score lookup by member."""

    def __init__(self) -> None:
        self.scores: dict[str, float] = {}
        self.ordered: SortedList = SortedList()

    def __len__(self) -> int:
        return len(self.scores)

    def add(self, member: str, score: float) -> None:
        old_score = self.scores.get(member)
        if old_score is not None:
            self.ordered.remove((old_score, member))
        self.scores[member] = score
        self.ordered.add((score, member))

    def remove(self, member: str) -> bool:
        score = self.scores.pop(member, None)
        if score is None:
            return False
        self.ordered.remove((score, member))
        return True

    def by_score(self, min_score: float, max_score: float) -> Iterator[str]:
        # "" sorts before any member with the same score
        start = self.ordered.bisect_left((min_score, ""))
        for score, member in self.ordered.islice(start):
            if score > max_score:
                break
            yield member

    def by_rank(self, start: int, stop: int) -> list[str]:
        lower, upper = normalise_range(len(self.ordered), start, stop)
        return [member for _, member in self.ordered[lower:upper]]


class MemoryBackend(KeyValueBackend):
    """Dictionaries in RAM, with a sorted index of every key for prefix scans.

    None of the methods await internally, so each call is atomic with respect
    to other tasks on the same event loop.
    """

    name: ClassVar[str] = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialise empty stores, clock is seconds and only used for ttls."""
        self._clock = clock
        self._strings: dict[str, str] = {}
        self._zsets: dict[str, _SortedSet] = {}
        self._sets: dict[str, set[str]] = {}
        self._lists: dict[str, list[str]] = {}
        self._index: SortedList = SortedList()
        self._deadlines: dict[str, float] = {}
        self._expiry_queue: list[tuple[float, str]] = []  # heap, entries go stale when a ttl changes
        logger.debug("Initialised in-memory backend")

    # region Helpers
    def _stores(self) -> tuple[dict[str, str], dict[str, _SortedSet], dict[str, set[str]], dict[str, list[str]]]:
        return self._strings, self._zsets, self._sets, self._lists

    def _track(self, key: str) -> None:
        if key not in self._index:
            self._index.add(key)

    def _untrack_if_gone(self, key: str) -> None:
        if not any(key in store for store in self._stores()):
            self._index.discard(key)
            self._deadlines.pop(key, None)

    def _set_deadline(self, key: str, ttl_seconds: float) -> None:
        deadline = self._clock() + ttl_seconds
        self._deadlines[key] = deadline
        heapq.heappush(self._expiry_queue, (deadline, key))

    def _is_expired(self, key: str) -> bool:
        deadline = self._deadlines.get(key)
        return deadline is not None and deadline <= self._clock()

    def _purge_if_expired(self, key: str) -> None:
        if self._is_expired(key):
            self._remove(key)

    def _sweep(self) -> None:
        """Drop every key whose ttl has passed, cost is proportional to what expired."""
        now = self._clock()
        while self._expiry_queue and self._expiry_queue[0][0] <= now:
            deadline, key = heapq.heappop(self._expiry_queue)
            if self._deadlines.get(key) == deadline:
                self._remove(key)

    def _remove(self, key: str) -> bool:
        found = False
        for store in self._stores():
            if key in store:
                del store[key]
                found = True
        self._deadlines.pop(key, None)
        self._index.discard(key)
        return found

    def _get(self, key: str) -> str | None:
        self._purge_if_expired(key)
        return self._strings.get(key)

    def _exists(self, key: str) -> bool:
        self._purge_if_expired(key)
        return key in self._index

    def _zset(self, key: str) -> _SortedSet | None:
        self._purge_if_expired(key)
        return self._zsets.get(key)

    def _zrem(self, key: str, members: list[str]) -> int:
        zset = self._zset(key)
        if zset is None:
            return 0
        removed = sum(1 for member in members if zset.remove(member))
        if not zset:
            del self._zsets[key]
            self._untrack_if_gone(key)
        return removed

    # region Strings
    async def get(self, key: str) -> str | None:
        return self._get(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        self._sweep()
        self._remove(key)
        self._strings[key] = value
        self._track(key)
        if ttl_seconds is not None:
            self._set_deadline(key, ttl_seconds)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            self._purge_if_expired(key)
            if self._remove(key):
                removed += 1
        return removed

    async def exists(self, key: str) -> bool:
        return self._exists(key)

    async def keys(self, prefix: str) -> list[str]:
        self._sweep()
        start = self._index.bisect_left(prefix)
        found: list[str] = []
        for key in self._index.islice(start):
            if not key.startswith(prefix):
                break
            found.append(key)
        return found

    async def mget(self, keys: list[str]) -> list[str | None]:
        return [self._get(key) for key in keys]

    async def expire(self, key: str, ttl_seconds: int) -> bool:
        if not self._exists(key):
            return False
        self._set_deadline(key, ttl_seconds)
        return True

    async def incr(self, key: str) -> int:
        self._sweep()
        value = int(self._get(key) or "0") + 1
        self._strings[key] = str(value)
        self._track(key)
        return value

    # region Sorted sets
    async def zadd(self, key: str, member: str, score: float) -> None:
        self._sweep()
        zset = self._zset(key)
        if zset is None:
            zset = self._zsets[key] = _SortedSet()
            self._track(key)
        zset.add(member, score)

    async def zrem(self, key: str, *members: str) -> int:
        return self._zrem(key, list(members))

    async def zcard(self, key: str) -> int:
        zset = self._zset(key)
        return len(zset) if zset is not None else 0

    async def zrange_by_score(self, key: str, min_score: float, max_score: float) -> list[str]:
        zset = self._zset(key)
        if zset is None:
            return []
        return list(zset.by_score(min_score, max_score))

    async def zrevrange(self, key: str, start: int, stop: int) -> list[str]:
        zset = self._zset(key)
        if zset is None:
            return []
        length = len(zset)
        lower, upper = normalise_range(length, start, stop)
        # Rank i from the top is index length - 1 - i from the bottom
        return zset.by_rank(length - upper, length - 1 - lower)[::-1] if upper else []

    async def zremrangebyrank(self, key: str, start: int, stop: int) -> int:
        zset = self._zset(key)
        if zset is None:
            return 0
        return self._zrem(key, zset.by_rank(start, stop))

    async def zremrangebyscore(self, key: str, min_score: float, max_score: float) -> int:
        zset = self._zset(key)
        if zset is None:
            return 0
        return self._zrem(key, list(zset.by_score(min_score, max_score)))

    # region Sets
    async def sadd(self, key: str, *members: str) -> int:
        self._sweep()
        self._purge_if_expired(key)
        existing = self._sets.setdefault(key, set())
        self._track(key)
        new_members = set(members) - existing
        existing.update(new_members)
        return len(new_members)

    async def srem(self, key: str, *members: str) -> int:
        self._purge_if_expired(key)
        existing = self._sets.get(key)
        if not existing:
            return 0
        present = existing.intersection(members)
        existing.difference_update(present)
        if not existing:
            del self._sets[key]
            self._untrack_if_gone(key)
        return len(present)

    async def smembers(self, key: str) -> builtins.set[str]:
        self._purge_if_expired(key)
        return set(self._sets.get(key, set()))

    # region Lists
    async def lpush(self, key: str, *values: str) -> int:
        self._sweep()
        self._purge_if_expired(key)
        items = self._lists.setdefault(key, [])
        self._track(key)
        for value in values:
            items.insert(0, value)
        return len(items)

    async def lrem(self, key: str, value: str) -> int:
        self._purge_if_expired(key)
        items = self._lists.get(key)
        if not items:
            return 0
        kept = [item for item in items if item != value]
        removed = len(items) - len(kept)
        if kept:
            self._lists[key] = kept
        else:
            del self._lists[key]
            self._untrack_if_gone(key)
        return removed

    async def ltrim(self, key: str, start: int, stop: int) -> None:
        self._purge_if_expired(key)
        items = self._lists.get(key)
        if items is None:
            return
        lower, upper = normalise_range(len(items), start, stop)
        kept = items[lower:upper]
        if kept:
            self._lists[key] = kept
        else:
            del self._lists[key]
            self._untrack_if_gone(key)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        self._purge_if_expired(key)
        items = self._lists.get(key, [])
        lower, upper = normalise_range(len(items), start, stop)
        return items[lower:upper]

    # region Lifecycle
    async def ping(self) -> bool:
        return True
