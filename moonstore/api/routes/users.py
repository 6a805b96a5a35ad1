"""Registration and login bookkeeping."""

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from moonstore.api.deps import CurrentUser
from moonstore.core.exceptions import ValidationError
from moonstore.instances.config import settings
from moonstore.instances.services import get_login_stats_store, get_site_config_store
from moonstore.instances.storage import get_storage
from moonstore.services.login_stats import LoginStatsStore
from moonstore.services.site_config import SiteConfigStore
from moonstore.services.storage.models import LoginStats, UserEntry, UserMeta
from moonstore.utils.api_models import MessageResponseModel
from moonstore.utils.helpers import now_ms
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Users"])


class RegisterRequestModel(BaseModel):
    username: str = Field(min_length=3, max_length=20, pattern=r"^[a-zA-Z0-9_]+$")
    password: str = Field(min_length=6)


@router.post("/register")
async def register(
    body: RegisterRequestModel,
    login_stats: Annotated[LoginStatsStore, Depends(get_login_stats_store)],
    site_config: Annotated[SiteConfigStore, Depends(get_site_config_store)],
) -> MessageResponseModel:
    """Create an account, its meta row and its first login."""
    if settings.ROOT_USERNAME and body.username == settings.ROOT_USERNAME:
        msg = "This username is not available"
        raise ValidationError(msg)

    storage = get_storage()
    await storage.register_user(body.username, body.password)

    now = now_ms()
    await storage.set_user_meta(body.username, UserMeta(created_at=now, last_active_at=now, login_count=0))
    await login_stats.record_login(body.username, now, is_first_login=True)

    roster = await site_config.get_roster()
    if not any(entry.username == body.username for entry in roster):
        roster.append(UserEntry(username=body.username, role="user", banned=False))
        await site_config.save_roster(roster)

    return MessageResponseModel(message="Registered, please log in")


@router.post("/login/record")
async def record_login(
    user: CurrentUser,
    login_stats: Annotated[LoginStatsStore, Depends(get_login_stats_store)],
) -> LoginStats:
    """Called by the auth layer after a successful login."""
    return await login_stats.record_login(user.username)
