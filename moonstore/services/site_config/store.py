"""Site policy, user roster and catalog sources, stored as the admin config."""

from typing import TYPE_CHECKING

from moonstore.services.storage.models import AdminConfig, CatalogSource, SitePolicy, UserConfig, UserEntry
from moonstore.utils.logger import get_logger

if TYPE_CHECKING:
    from moonstore.core.config import SiteConf
    from moonstore.services.storage import StorageService
else:
    SiteConf = object
    StorageService = object

logger = get_logger(__name__)


class SiteConfigStore:
    """Reads and writes the admin config, falling back to defaults from settings."""

    def __init__(self, storage: StorageService, defaults: SiteConf, root_username: str = "") -> None:
        """The defaults apply until an admin config has been saved."""
        self._storage = storage
        self._defaults = defaults
        self._root_username = root_username

    def default_config(self) -> AdminConfig:
        """Admin config for a fresh install, the root user is the only owner."""
        users = [UserEntry(username=self._root_username, role="owner")] if self._root_username else []
        return AdminConfig(
            site_config=SitePolicy(
                auto_clean_inactive_users=self._defaults.auto_clean_inactive_users,
                inactive_user_days=self._defaults.inactive_user_days,
            ),
            user_config=UserConfig(users=users),
        )

    async def get_config(self) -> AdminConfig:
        config = await self._storage.get_admin_config()
        if config is None:
            logger.debug("No admin config stored, using defaults")
            return self.default_config()
        return config

    async def get_policy(self) -> SitePolicy:
        return (await self.get_config()).site_config

    async def get_roster(self) -> list[UserEntry]:
        return list((await self.get_config()).user_config.users)

    async def save_roster(self, users: list[UserEntry]) -> None:
        """Replace the roster, leaving the rest of the admin config alone."""
        config = await self.get_config()
        config.user_config.users = list(users)
        await self._storage.set_admin_config(config)
        logger.info("Saved user roster with %d users", len(users))

    async def get_sources(self) -> list[CatalogSource]:
        """Enabled catalog sources."""
        return [source for source in (await self.get_config()).source_config if not source.disabled]
