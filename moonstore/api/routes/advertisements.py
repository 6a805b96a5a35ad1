"""Advertisement API Blueprint."""

from fastapi import APIRouter

from moonstore.instances.storage import get_storage
from moonstore.services.storage.models import Advertisement

router = APIRouter(prefix="/advertisements", tags=["Advertisements"])


@router.get("")
async def active_advertisements(position: str | None = None) -> list[Advertisement]:
    """Advertisements showing right now, highest priority first."""
    return await get_storage().get_active_advertisements(position=position or None)
