"""Map core errors to HTTP responses."""

from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from moonstore.core.exceptions import (
    AlreadyExists,
    BackendUnavailable,
    MoonStoreError,
    NotFound,
    UpstreamLookupFailed,
    ValidationError,
)
from moonstore.utils.api_models import MessageResponseModel
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

ERROR_STATUS: list[tuple[type[MoonStoreError], HTTPStatus]] = [
    (ValidationError, HTTPStatus.BAD_REQUEST),
    (AlreadyExists, HTTPStatus.CONFLICT),
    (NotFound, HTTPStatus.NOT_FOUND),
    (BackendUnavailable, HTTPStatus.SERVICE_UNAVAILABLE),
    (UpstreamLookupFailed, HTTPStatus.BAD_GATEWAY),
]


def status_for_error(error: MoonStoreError) -> HTTPStatus:
    for error_type, status in ERROR_STATUS:
        if isinstance(error, error_type):
            return status
    return HTTPStatus.INTERNAL_SERVER_ERROR


async def moonstore_error_handler(_: Request, exc: Exception) -> JSONResponse:
    """Turn a MoonStoreError into a MessageResponseModel with a matching status."""
    if not isinstance(exc, MoonStoreError):  # pragma: no cover Only registered for MoonStoreError
        raise exc

    status = status_for_error(exc)
    if isinstance(exc, BackendUnavailable):
        logger.error("Storage unavailable: %s", exc.last_error)
        message = "Storage is temporarily unavailable, try again later"
    else:
        message = str(exc)

    return JSONResponse(
        status_code=status,
        content=MessageResponseModel(message=message).model_dump(),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MoonStoreError, moonstore_error_handler)
