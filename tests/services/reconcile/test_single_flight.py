"""In-flight deduplication."""

import asyncio

import pytest

from moonstore.services.reconcile import SingleFlightCache


async def test_concurrent_callers_share_one_fetch() -> None:
    cache: SingleFlightCache[str] = SingleFlightCache()
    calls = 0
    release = asyncio.Event()

    async def fetch() -> str:
        nonlocal calls
        calls += 1
        await release.wait()
        return "detail"

    waiters = [asyncio.create_task(cache.get_or_fetch("src+1", fetch)) for _ in range(5)]
    await asyncio.sleep(0)
    release.set()

    assert await asyncio.gather(*waiters) == ["detail"] * 5
    assert calls == 1
    assert "src+1" in cache
    assert len(cache) == 1


async def test_success_is_remembered() -> None:
    cache: SingleFlightCache[int] = SingleFlightCache()
    calls = 0

    async def fetch() -> int:
        nonlocal calls
        calls += 1
        return calls

    assert await cache.get_or_fetch("k", fetch) == 1
    assert await cache.get_or_fetch("k", fetch) == 1
    assert await cache.get_or_fetch("other", fetch) == 2  # noqa: PLR2004

    cache.clear()
    assert len(cache) == 0
    assert await cache.get_or_fetch("k", fetch) == 3  # noqa: PLR2004


async def test_failure_is_not_cached() -> None:
    cache: SingleFlightCache[str] = SingleFlightCache()
    attempts = 0

    async def flaky() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            msg = "upstream down"
            raise RuntimeError(msg)
        return "ok"

    with pytest.raises(RuntimeError, match="upstream down"):
        await cache.get_or_fetch("k", flaky)
    assert "k" not in cache

    assert await cache.get_or_fetch("k", flaky) == "ok"
    assert attempts == 2  # noqa: PLR2004


async def test_failure_reaches_every_waiter() -> None:
    cache: SingleFlightCache[str] = SingleFlightCache()
    release = asyncio.Event()

    async def failing() -> str:
        await release.wait()
        msg = "nope"
        raise ValueError(msg)

    waiters = [asyncio.create_task(cache.get_or_fetch("k", failing)) for _ in range(3)]
    await asyncio.sleep(0)
    release.set()

    results = await asyncio.gather(*waiters, return_exceptions=True)
    assert all(isinstance(result, ValueError) for result in results)


async def test_cancelled_waiter_does_not_cancel_fetch() -> None:
    cache: SingleFlightCache[str] = SingleFlightCache()
    release = asyncio.Event()

    async def fetch() -> str:
        await release.wait()
        return "done"

    first = asyncio.create_task(cache.get_or_fetch("k", fetch))
    second = asyncio.create_task(cache.get_or_fetch("k", fetch))
    await asyncio.sleep(0)

    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    release.set()
    assert await second == "done"
