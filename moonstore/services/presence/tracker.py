"""Heartbeat ingestion and online user counting."""

import secrets
from collections.abc import Mapping

from pydantic import BaseModel

from moonstore.constants import DEFAULT_PRESENCE_WINDOW_MINUTES, MS_PER_MINUTE
from moonstore.core.exceptions import ValidationError
from moonstore.services.storage import StorageService
from moonstore.services.storage.models import UserSession
from moonstore.utils.helpers import now_ms, require_name, require_username, to_base36
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

SESSION_ID_RANDOM_BITS = 48


class ClientInfo(BaseModel):
    """What we know about the client sending a heartbeat."""

    ip_address: str | None = None
    user_agent: str | None = None


def client_info_from_headers(headers: Mapping[str, str]) -> ClientInfo:
    """First X-Forwarded-For hop, else X-Real-IP, plus the User-Agent."""
    lowered = {name.lower(): value for name, value in headers.items()}

    ip_address: str | None = None
    forwarded_for = lowered.get("x-forwarded-for", "")
    if forwarded_for.strip():
        ip_address = forwarded_for.split(",")[0].strip() or None
    if ip_address is None:
        ip_address = lowered.get("x-real-ip", "").strip() or None

    return ClientInfo(ip_address=ip_address, user_agent=lowered.get("user-agent") or None)


def generate_session_id(now: int | None = None) -> str:
    """Session ids look like '<ms timestamp>-<random base36>'."""
    if now is None:
        now = now_ms()
    return f"{now}-{to_base36(secrets.randbits(SESSION_ID_RANDOM_BITS))}"


def _validate_window(window_minutes: int) -> int:
    if window_minutes < 1:
        msg = f"window_minutes must be at least 1, got {window_minutes}"
        raise ValidationError(msg)
    return window_minutes


class PresenceTracker:
    """Tracks who is online from heartbeats, backed by the presence index."""

    def __init__(self, storage: StorageService) -> None:
        """Initialise with the shared storage service."""
        self._storage = storage

    async def record_heartbeat(
        self,
        username: str,
        session_id: str,
        client_info: ClientInfo | None = None,
        now: int | None = None,
    ) -> UserSession:
        """Upsert the session, refresh its ttl and touch the user's last_active_at."""
        username = require_username(username)
        session_id = require_name(session_id, "session id")
        if now is None:
            now = now_ms()
        if client_info is None:
            client_info = ClientInfo()

        session = UserSession(
            username=username,
            session_id=session_id,
            last_active_at=now,
            ip_address=client_info.ip_address,
            user_agent=client_info.user_agent,
        )
        await self._storage.set_user_session(session)
        await self._storage.touch_user_meta(username, now)

        logger.trace("Heartbeat from %s, session %s", username, session_id)
        return session

    async def get_online_users(
        self,
        window_minutes: int = DEFAULT_PRESENCE_WINDOW_MINUTES,
        now: int | None = None,
    ) -> list[str]:
        """Distinct users with a heartbeat in [now - window, now], sorted.

        Index entries older than the window are pruned along the way, session
        rows are left for their ttl to remove.
        """
        window_minutes = _validate_window(window_minutes)
        if now is None:
            now = now_ms()
        cutoff = now - window_minutes * MS_PER_MINUTE

        sessions = await self._storage.get_sessions_in_window(cutoff, until=now)
        pruned = await self._storage.prune_presence_index(cutoff)
        if pruned:
            logger.debug("Pruned %d stale entries from the presence index", pruned)

        return sorted({session.username for session in sessions})

    async def count_online_users(
        self,
        window_minutes: int = DEFAULT_PRESENCE_WINDOW_MINUTES,
        now: int | None = None,
    ) -> int:
        """Number of distinct users online, several sessions of one user count once."""
        return len(await self.get_online_users(window_minutes, now))

    async def end_session(self, session_id: str) -> None:
        """Explicit logout, the user drops out of presence immediately."""
        await self._storage.delete_user_session(session_id)
