import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from rich import traceback

from moonstore.api.errors import register_error_handlers
from moonstore.api.main import api_router
from moonstore.constants import API_V1_STR
from moonstore.core.exceptions import MoonStoreError
from moonstore.instances.config import settings
from moonstore.instances.paths import get_app_path_handler
from moonstore.instances.storage import get_storage, set_storage
from moonstore.utils.logger import get_logger, setup_logger
from moonstore.version import PROGRAM_NAME, __version__

if TYPE_CHECKING:
    from fastapi.routing import APIRoute
else:
    APIRoute = object


# Don't put anything on stdout if we are generating openapi json
IN_OPEN_API_MODE: bool = os.getenv("IN_OPEN_API_MODE", "false").lower() == "true"

logger = get_logger(__name__)

if not IN_OPEN_API_MODE:
    traceback.install()

    settings.write_config(get_app_path_handler().settings_file)
    setup_logger(settings=settings.logging)
    setup_logger(settings=settings.logging, in_logger="uvicorn.error")

    msg = f""">>>
-------------------------------------------------------------------------------
{PROGRAM_NAME}
Version: {__version__}
Config file: {get_app_path_handler().settings_file.absolute()}
Environment: {settings.ENVIRONMENT.capitalize()}
Storage backend: {settings.storage.backend}
-------------------------------------------------------------------------------"""

    logger.info(msg)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}"


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan - startup and shutdown."""
    storage = get_storage()
    try:
        await storage.ping()
    except MoonStoreError as e:
        logger.error("Storage backend %s is not reachable yet: %s", storage.backend.name, e)  # noqa: TRY400 Keep starting, requests will get 503s

    yield

    await storage.close()
    set_storage(None)


app = FastAPI(
    title=PROGRAM_NAME,
    openapi_url=f"{API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
    lifespan=lifespan,
)
register_error_handlers(app)
app.include_router(api_router, prefix=API_V1_STR)
