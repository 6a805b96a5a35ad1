"""Login ledger used for account lifecycle decisions."""

from moonstore.services.storage import StorageService
from moonstore.services.storage.models import LoginStats
from moonstore.utils.helpers import now_ms, require_username
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)


class LoginStatsStore:
    """Records logins and answers "when did this user last log in".

    Kept separate from UserMeta on purpose, nothing else writes to it.

    By default a login is a read, modify, write of the stats row, so two
    concurrent logins of the same user can lose an increment. With atomic=True
    the count comes from a backend counter instead and only the timestamps are
    last writer wins.
    """

    def __init__(self, storage: StorageService, *, atomic: bool = False) -> None:
        """Pick the update strategy, see the class docstring."""
        self._storage = storage
        self.atomic = atomic

    async def get_stats(self, username: str) -> LoginStats:
        """Stats for the user, zeroes if they never logged in."""
        stats = await self._storage.get_login_stats(username) or LoginStats()
        if self.atomic:
            count = await self._storage.get_login_count(username)
            if count is not None:
                stats.login_count = count
        return stats

    async def record_login(
        self,
        username: str,
        login_time: int | None = None,
        *,
        is_first_login: bool = False,
    ) -> LoginStats:
        """Count a login at login_time (default now) and return the new stats."""
        username = require_username(username)
        if login_time is None:
            login_time = now_ms()

        stats = await self._storage.get_login_stats(username) or LoginStats()

        if self.atomic:
            stats.login_count = await self._storage.increment_login_count(username)
        else:
            stats.login_count += 1

        stats.last_login_time = login_time
        stats.last_login_date = login_time
        if is_first_login or not stats.first_login_time:
            stats.first_login_time = login_time

        await self._storage.set_login_stats(username, stats)
        logger.debug("Recorded login %d for %s", stats.login_count, username)
        return stats

    @staticmethod
    def last_login(stats: LoginStats) -> int:
        """The best available last login time, 0 meaning never."""
        return stats.last_login_time or stats.last_login_date or stats.first_login_time or 0
