"""Health API Blueprint."""

from fastapi import APIRouter
from psutil import Process

from moonstore.core.exceptions import MoonStoreError
from moonstore.instances.config import settings
from moonstore.instances.storage import get_storage
from moonstore.utils.health import HealthResponseModel, StorageHealthModel
from moonstore.utils.logger import get_logger
from moonstore.version import __version__

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

PROCESS = Process()


@router.get("")
async def health() -> HealthResponseModel:
    """API endpoint to check the health of the service."""
    storage = get_storage()
    try:
        reachable = await storage.ping()
    except MoonStoreError as e:
        logger.warning("Health check could not reach storage: %s", e)
        reachable = False

    memory = str(PROCESS.memory_info().rss / (1024 * 1024))

    return HealthResponseModel(
        version=__version__,
        environment=settings.ENVIRONMENT,
        storage=StorageHealthModel(backend=storage.backend.name, reachable=reachable),
        memory_usage_mb=memory,
    )
