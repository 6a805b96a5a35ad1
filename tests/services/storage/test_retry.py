"""Retry policy for backend calls."""

import socket

import pytest

from moonstore.backends import MemoryBackend
from moonstore.core.exceptions import BackendUnavailable, NotFound, ValidationError
from moonstore.services.storage import RetryingClient


@pytest.fixture
def sleep(mocker):
    return mocker.patch("moonstore.services.storage.retry.asyncio.sleep", new=mocker.AsyncMock())


async def test_success_first_time(sleep, mocker) -> None:
    client = RetryingClient(MemoryBackend(), attempts=3, base_delay=1.0)
    fn = mocker.AsyncMock(return_value="ok")

    assert await client.call(fn, "a", b=1) == "ok"
    fn.assert_awaited_once_with("a", b=1)
    sleep.assert_not_awaited()


async def test_transient_then_success(sleep, mocker) -> None:
    client = RetryingClient(MemoryBackend(), attempts=3, base_delay=1.0)
    fn = mocker.AsyncMock(side_effect=[ConnectionRefusedError("refused"), "ok"])

    assert await client.call(fn) == "ok"
    assert fn.await_count == 2  # noqa: PLR2004
    sleep.assert_awaited_once_with(1.0)


async def test_exhausted_raises_backend_unavailable(sleep, mocker) -> None:
    """TEST: Linear backoff between attempts, none after the last one."""
    client = RetryingClient(MemoryBackend(), attempts=3, base_delay=1.0)
    last = TimeoutError("timed out")
    fn = mocker.AsyncMock(side_effect=[ConnectionResetError("reset"), socket.gaierror("dns"), last])

    with pytest.raises(BackendUnavailable) as exc_info:
        await client.call(fn)

    assert exc_info.value.last_error is last
    assert exc_info.value.__cause__ is last
    assert fn.await_count == 3  # noqa: PLR2004
    assert [call.args[0] for call in sleep.await_args_list] == [1.0, 2.0]


async def test_non_transient_fails_as_validation_error(sleep, mocker) -> None:
    client = RetryingClient(MemoryBackend(), attempts=3)
    cause = RuntimeError("WRONGTYPE Operation against a key holding the wrong kind of value")
    fn = mocker.AsyncMock(side_effect=cause)

    with pytest.raises(ValidationError, match="WRONGTYPE") as exc_info:
        await client.call(fn)

    assert exc_info.value.__cause__ is cause
    fn.assert_awaited_once()
    sleep.assert_not_awaited()


async def test_core_errors_pass_through(sleep, mocker) -> None:
    client = RetryingClient(MemoryBackend(), attempts=3)
    fn = mocker.AsyncMock(side_effect=NotFound("gone"))

    with pytest.raises(NotFound, match="gone"):
        await client.call(fn)

    fn.assert_awaited_once()
    sleep.assert_not_awaited()


async def test_backend_transient_errors_are_retried(sleep, mocker) -> None:
    class FlakyError(Exception):
        pass

    backend = MemoryBackend()
    mocker.patch.object(MemoryBackend, "transient_errors", (FlakyError,))
    client = RetryingClient(backend, attempts=2, base_delay=0.5)

    assert client.is_transient(FlakyError())
    assert client.is_transient(ConnectionError())
    assert not client.is_transient(KeyError())

    fn = mocker.AsyncMock(side_effect=[FlakyError(), 42])
    assert await client.call(fn) == 42  # noqa: PLR2004
    sleep.assert_awaited_once_with(0.5)


async def test_at_least_one_attempt(sleep, mocker) -> None:
    client = RetryingClient(MemoryBackend(), attempts=0)
    fn = mocker.AsyncMock(side_effect=ConnectionError())

    with pytest.raises(BackendUnavailable):
        await client.call(fn)
    fn.assert_awaited_once()
