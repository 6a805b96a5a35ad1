"""Trigger for the reconciliation job, an external scheduler calls this."""

import asyncio

from fastapi import APIRouter

from moonstore.instances.services import build_orchestrator
from moonstore.utils.api_models import MessageResponseModel
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"])

_async_background_tasks: set[asyncio.Task[None]] = set()


async def _run_reconciliation() -> None:
    try:
        orchestrator = await build_orchestrator()
        await orchestrator.run()
    except Exception:
        logger.exception("Reconciliation run failed")


@router.post("")
async def cron() -> MessageResponseModel:
    """Start one reconciliation run in the background."""
    logger.info("Cron job triggered")
    task = asyncio.create_task(_run_reconciliation())
    _async_background_tasks.add(task)
    task.add_done_callback(_async_background_tasks.discard)
    return MessageResponseModel(message="Reconciliation started")
