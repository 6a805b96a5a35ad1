"""Heartbeats and online presence."""

from typing import Annotated

from fastapi import APIRouter, Cookie, Depends, Request, Response
from pydantic import BaseModel

from moonstore.api.deps import CurrentUser
from moonstore.constants import SESSION_COOKIE_NAME
from moonstore.instances.config import settings
from moonstore.instances.services import get_presence_tracker
from moonstore.services.presence import PresenceTracker, client_info_from_headers, generate_session_id

router = APIRouter(tags=["Presence"])


class HeartbeatResponseModel(BaseModel):
    session_id: str
    last_active_at: int


class OnlineUsersResponseModel(BaseModel):
    count: int
    window_minutes: int


@router.post("/user/heartbeat")
async def heartbeat(
    request: Request,
    response: Response,
    user: CurrentUser,
    tracker: Annotated[PresenceTracker, Depends(get_presence_tracker)],
    session_id: Annotated[str | None, Cookie(alias=SESSION_COOKIE_NAME)] = None,
) -> HeartbeatResponseModel:
    """Keep the caller's session alive, issuing a session cookie if they have none."""
    if not session_id or not session_id.strip():
        session_id = generate_session_id()

    session = await tracker.record_heartbeat(
        user.username,
        session_id,
        client_info_from_headers(request.headers),
    )

    response.set_cookie(
        SESSION_COOKIE_NAME,
        session.session_id,
        max_age=settings.storage.session_ttl_seconds,
        path="/",
        samesite="lax",
    )
    return HeartbeatResponseModel(session_id=session.session_id, last_active_at=session.last_active_at)


@router.get("/online-users")
async def online_users(
    tracker: Annotated[PresenceTracker, Depends(get_presence_tracker)],
) -> OnlineUsersResponseModel:
    """Number of users with a heartbeat inside the presence window."""
    window_minutes = settings.reconcile.presence_window_minutes
    count = await tracker.count_online_users(window_minutes)
    return OnlineUsersResponseModel(count=count, window_minutes=window_minutes)
