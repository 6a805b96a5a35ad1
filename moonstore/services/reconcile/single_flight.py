"""In-flight deduplication of async lookups."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class SingleFlightCache(Generic[T]):
    """Run each key's fetch at most once at a time, and remember successes.

    Concurrent callers for one key share a single task. A successful result is
    kept for the life of the instance, a failure is handed to everyone waiting
    on that attempt and then forgotten so the next caller tries again.
    Meant to live for one reconciliation run.
    """

    def __init__(self) -> None:
        """Start empty."""
        self._tasks: dict[str, asyncio.Task[T]] = {}

    async def get_or_fetch(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        # No await between the lookup and the insert, so only one task per key is ever created
        task = self._tasks.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fetch(key, fetch_fn))
            self._tasks[key] = task

        # One caller being cancelled must not cancel the fetch for the others
        return await asyncio.shield(task)

    async def _fetch(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        try:
            return await fetch_fn()
        except BaseException:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
            raise

    def clear(self) -> None:
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, key: object) -> bool:
        return key in self._tasks
