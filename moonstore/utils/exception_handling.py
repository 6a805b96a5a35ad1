"""Nice method to log aiohttp exceptions."""

from typing import TYPE_CHECKING

from aiohttp import ClientError, ClientResponseError

if TYPE_CHECKING:
    from logging import Logger as CustomLogger

    from yarl import URL
else:
    CustomLogger = object
    URL = object


def describe_aiohttp_exception(exception: ClientError | TimeoutError) -> str:
    """Short description, with the status for HTTP errors."""
    error_name = type(exception).__name__
    if isinstance(exception, ClientResponseError):
        return f"{error_name} status: {exception.status} {exception.message}".strip()
    if isinstance(exception, TimeoutError):
        return f"{error_name} timed out"
    return error_name


def log_aiohttp_exception(
    logger: CustomLogger,
    url: URL | str,
    exception: ClientError | TimeoutError,
    message: str = "",
) -> None:
    """Log details of an aiohttp exception."""
    msg = f"aiohttp {message} {url}".replace("  ", " ")
    logger.error("%s\n%s", msg, describe_aiohttp_exception(exception))
