"""Services built on the shared storage service, for the API and CLI."""

from moonstore.instances.config import settings
from moonstore.instances.storage import get_storage
from moonstore.services.api_log import ApiCallLogger
from moonstore.services.catalog import CatalogClient
from moonstore.services.login_stats import LoginStatsStore
from moonstore.services.presence import PresenceTracker
from moonstore.services.reconcile import ReconciliationOrchestrator
from moonstore.services.site_config import SiteConfigStore


def get_presence_tracker() -> PresenceTracker:
    return PresenceTracker(get_storage())


def get_login_stats_store() -> LoginStatsStore:
    return LoginStatsStore(get_storage(), atomic=settings.storage.login_stats_atomic)


def get_site_config_store() -> SiteConfigStore:
    return SiteConfigStore(get_storage(), settings.site, root_username=settings.ROOT_USERNAME)


def get_api_call_logger() -> ApiCallLogger:
    return ApiCallLogger(get_storage())


async def build_orchestrator() -> ReconciliationOrchestrator:
    """A reconciliation orchestrator using the catalog sources currently configured."""
    storage = get_storage()
    site_config = get_site_config_store()
    catalog = CatalogClient(
        await site_config.get_sources(),
        timeout_seconds=settings.reconcile.catalog_timeout_seconds,
        api_logger=ApiCallLogger(storage),
    )
    return ReconciliationOrchestrator(
        storage,
        get_login_stats_store(),
        site_config,
        catalog,
        root_username=settings.ROOT_USERNAME,
        user_concurrency=settings.reconcile.user_concurrency,
    )
