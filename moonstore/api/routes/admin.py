"""Admin API Blueprint."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from moonstore.api.deps import get_current_admin
from moonstore.instances.services import build_orchestrator, get_api_call_logger
from moonstore.services.api_log import ApiCallLogger, ApiCallStats
from moonstore.services.reconcile import CleanupMode
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(get_current_admin)])


class CleanupRequestModel(BaseModel):
    mode: CleanupMode = "init"


class CleanupResponseModel(BaseModel):
    mode: CleanupMode
    removed_count: int
    initialized_count: int
    removed: list[str]
    initialized: list[str]


@router.post("/cleanup-users")
async def cleanup_users(body: CleanupRequestModel) -> CleanupResponseModel:
    """Clean up inactive users now, init gives users with no logins a grace period, force removes them."""
    orchestrator = await build_orchestrator()
    result = await orchestrator.cleanup_inactive_users(body.mode)
    return CleanupResponseModel(
        mode=result.mode,
        removed_count=result.removed_count,
        initialized_count=result.initialized_count,
        removed=result.removed,
        initialized=result.initialized,
    )


@router.get("/api-stats")
async def api_stats(
    api_logger: Annotated[ApiCallLogger, Depends(get_api_call_logger)],
    limit: int = 100,
) -> ApiCallStats:
    """Success rates and response times of recent catalog calls."""
    return await api_logger.get_api_call_stats(limit)
