"""Retry wrapper for backend calls."""

import asyncio
import socket
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

from moonstore.backends import KeyValueBackend
from moonstore.constants import DEFAULT_RETRY_ATTEMPTS, DEFAULT_RETRY_BASE_DELAY
from moonstore.core.exceptions import BackendUnavailable, MoonStoreError, ValidationError
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

# Connection refused/reset are ConnectionError subclasses, DNS failures are gaierror
BUILTIN_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionError,
    TimeoutError,
    socket.gaierror,
)


class RetryingClient:
    """Calls backend methods, retrying transient connectivity failures with a linear backoff.

    Attempt n that fails transiently waits base_delay * n seconds before attempt n + 1.
    Anything else fails straight away as a ValidationError chained to the backend's
    own error. Running out of attempts raises BackendUnavailable.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        attempts: int = DEFAULT_RETRY_ATTEMPTS,
        base_delay: float = DEFAULT_RETRY_BASE_DELAY,
    ) -> None:
        self.backend = backend
        self._attempts = max(attempts, 1)
        self._base_delay = base_delay
        self._transient_errors = BUILTIN_TRANSIENT_ERRORS + backend.transient_errors

    def is_transient(self, error: BaseException) -> bool:
        """Whether this error is worth another attempt."""
        return isinstance(error, self._transient_errors)

    async def call(self, fn: Callable[P, Awaitable[R]], *args: P.args, **kwargs: P.kwargs) -> R:
        """Await fn(*args, **kwargs) under the retry policy."""
        last_error: BaseException | None = None
        operation = getattr(fn, "__name__", repr(fn))

        for attempt in range(1, self._attempts + 1):
            try:
                return await fn(*args, **kwargs)
            except self._transient_errors as e:
                last_error = e
                if attempt == self._attempts:
                    break

                delay = self._base_delay * attempt
                logger.warning(
                    "%s backend %s failed with %s, retrying in %.1fs (%d/%d)",
                    self.backend.name,
                    operation,
                    type(e).__name__,
                    delay,
                    attempt,
                    self._attempts,
                )
                await asyncio.sleep(delay)
            except MoonStoreError:
                raise
            except Exception as e:
                logger.error("%s backend %s rejected the call: %r", self.backend.name, operation, e)  # noqa: TRY400 Caller decides
                msg = f"Storage backend rejected {operation}: {e}"
                raise ValidationError(msg) from e

        logger.error(
            "%s backend %s failed after %d attempts: %s",
            self.backend.name,
            operation,
            self._attempts,
            last_error,
        )
        msg = f"Storage backend unavailable during {operation}, try again later"
        raise BackendUnavailable(msg, last_error=last_error) from last_error
