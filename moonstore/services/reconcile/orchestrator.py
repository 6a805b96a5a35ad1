"""The periodic reconciliation job, episode count refresh and inactive user cleanup."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from moonstore.constants import MS_PER_DAY
from moonstore.core.exceptions import MoonStoreError, UpstreamLookupFailed, ValidationError
from moonstore.services.login_stats import LoginStatsStore
from moonstore.services.storage.models import Favorite, PlayRecord, UserEntry
from moonstore.utils.helpers import now_ms, split_record_key
from moonstore.utils.logger import get_logger

from .models import CleanupMode, CleanupReport, CleanupResult, ReconcileReport, RefreshReport
from .single_flight import SingleFlightCache

if TYPE_CHECKING:
    from moonstore.services.catalog import CatalogDetail, CatalogLookup
    from moonstore.services.site_config import SiteConfigStore
    from moonstore.services.storage import StorageService
else:
    CatalogDetail = object
    CatalogLookup = object
    SiteConfigStore = object
    StorageService = object

logger = get_logger(__name__)

RecordT = TypeVar("RecordT", PlayRecord, Favorite)
DetailCache = SingleFlightCache["CatalogDetail | None"]

PROTECTED_ROLES = ("owner", "admin")


class ReconciliationOrchestrator:
    """Runs the reconciliation passes, one instance can run many times."""

    def __init__(
        self,
        storage: StorageService,
        login_stats: LoginStatsStore,
        site_config: SiteConfigStore,
        catalog: CatalogLookup,
        root_username: str = "",
        user_concurrency: int = 4,
    ) -> None:
        """Collaborators are injected, nothing here reaches for globals."""
        self._storage = storage
        self._login_stats = login_stats
        self._site_config = site_config
        self._catalog = catalog
        self._root_username = root_username
        self._user_concurrency = max(user_concurrency, 1)

    def _is_protected(self, entry: UserEntry) -> bool:
        """Owners, admins and the root user are never cleaned up."""
        return entry.role in PROTECTED_ROLES or (bool(self._root_username) and entry.username == self._root_username)

    # region Run
    async def run(self, now: int | None = None) -> ReconcileReport:
        """Refresh records, then clean up inactive users. Neither pass can stop the other."""
        if now is None:
            now = now_ms()
        report = ReconcileReport(started_at=now)
        logger.info("Reconciliation started")

        try:
            report.refresh = await self.refresh_records()
        except Exception as e:
            logger.exception("Record refresh pass failed")
            report.refresh = RefreshReport(error=str(e))

        try:
            report.cleanup = await self.clean_inactive_users(now)
        except Exception as e:
            logger.exception("Inactive user cleanup pass failed")
            report.cleanup = CleanupReport(error=str(e))

        report.finished_at = now_ms()
        logger.info(
            "Reconciliation finished, %d play records and %d favorites updated, %d users deleted",
            report.refresh.play_records_updated,
            report.refresh.favorites_updated,
            len(report.cleanup.deleted),
        )
        return report

    # region Cleanup
    async def clean_inactive_users(self, now: int | None = None) -> CleanupReport:
        """Delete accounts whose last login is older than the policy allows.

        Users that never logged in are kept, there is nothing to measure them by.
        """
        if now is None:
            now = now_ms()
        report = CleanupReport()

        try:
            policy = await self._site_config.get_policy()
            roster = await self._site_config.get_roster()
        except MoonStoreError as e:
            logger.error("Could not load the site policy, skipping inactive user cleanup: %s", e)  # noqa: TRY400 Expected
            report.error = str(e)
            return report

        if not policy.auto_clean_inactive_users:
            logger.info("Automatic inactive user cleanup is disabled")
            return report

        report.enabled = True
        cutoff = now - policy.inactive_user_days * MS_PER_DAY
        logger.info("Cleaning up users inactive for over %d days", policy.inactive_user_days)

        for entry in roster:
            if self._is_protected(entry):
                logger.trace("Skipping protected user %s", entry.username)
                continue

            report.checked += 1
            try:
                if await self._evaluate_inactive_user(entry.username, cutoff):
                    report.deleted.append(entry.username)
            except MoonStoreError as e:
                logger.error("Failed to clean up user %s: %s", entry.username, e)  # noqa: TRY400 Expected
                report.failed.append(entry.username)
            except Exception:
                logger.exception("Unexpected error cleaning up user %s", entry.username)
                report.failed.append(entry.username)

        if report.deleted:
            deleted = set(report.deleted)
            await self._site_config.save_roster([entry for entry in roster if entry.username not in deleted])
            logger.info("Deleted %d inactive users", len(report.deleted))
        else:
            logger.info("No inactive users to delete")

        return report

    async def _evaluate_inactive_user(self, username: str, cutoff: int) -> bool:
        """Delete the user if their last login is before cutoff, returns whether they were deleted."""
        if not await self._storage.check_user_exist(username):
            logger.warning("User %s is in the roster but has no account, skipping", username)
            return False

        stats = await self._login_stats.get_stats(username)
        last_login = LoginStatsStore.last_login(stats)

        if last_login == 0:
            logger.debug("User %s has no login record, keeping", username)
            return False
        if last_login >= cutoff:
            return False

        logger.info("Deleting inactive user %s, last login %d, %d logins", username, last_login, stats.login_count)
        await self._storage.delete_user(username)
        return True

    async def cleanup_inactive_users(self, mode: CleanupMode, now: int | None = None) -> CleanupResult:
        """Admin triggered cleanup, runs whether or not automatic cleanup is enabled.

        init: users with no login record get one now, which starts their grace period.
        force: users with no login record are removed along with the inactive ones.
        """
        if mode not in ("init", "force"):
            msg = f"Unknown cleanup mode '{mode}', expected 'init' or 'force'"
            raise ValidationError(msg)
        if now is None:
            now = now_ms()

        policy = await self._site_config.get_policy()
        roster = await self._site_config.get_roster()
        cutoff = now - policy.inactive_user_days * MS_PER_DAY
        result = CleanupResult(mode=mode)

        for entry in roster:
            if self._is_protected(entry):
                continue

            last_login = LoginStatsStore.last_login(await self._login_stats.get_stats(entry.username))
            if last_login == 0 and mode == "init":
                await self._login_stats.record_login(entry.username, now, is_first_login=True)
                result.initialized.append(entry.username)
            elif last_login == 0 or last_login < cutoff:
                result.removed.append(entry.username)

        if result.removed:
            removed = set(result.removed)
            await self._site_config.save_roster([entry for entry in roster if entry.username not in removed])
            for username in result.removed:
                try:
                    await self._storage.delete_user(username)
                except MoonStoreError as e:
                    logger.error("Failed to delete data of user %s: %s", username, e)  # noqa: TRY400 Expected

        logger.info(
            "Manual %s cleanup removed %d users, initialised %d",
            mode,
            result.removed_count,
            result.initialized_count,
        )
        return result

    # region Refresh
    async def refresh_records(self) -> RefreshReport:
        """Bring episode counts of play records and favorites in line with the catalog.

        Users run concurrently, each user's records run one at a time. Lookups are
        shared across users for the duration of this call.
        """
        report = RefreshReport()
        try:
            users = await self._storage.get_all_users()
        except MoonStoreError as e:
            logger.error("Could not list users, skipping record refresh: %s", e)  # noqa: TRY400 Expected
            report.error = str(e)
            return report

        if self._root_username and self._root_username not in users:
            users.append(self._root_username)

        report.users = len(users)
        cache: DetailCache = SingleFlightCache()
        semaphore = asyncio.Semaphore(self._user_concurrency)

        async def refresh_user(username: str) -> None:
            async with semaphore:
                try:
                    await self._refresh_user(username, cache, report)
                except Exception:
                    logger.exception("Unexpected error refreshing records of %s", username)
                    report.failed += 1

        await asyncio.gather(*(refresh_user(username) for username in users))

        logger.info(
            "Record refresh done for %d users, %d lookups made",
            report.users,
            len(cache),
        )
        return report

    async def _refresh_user(self, username: str, cache: DetailCache, report: RefreshReport) -> None:
        logger.debug("Refreshing records of %s", username)

        try:
            play_records = await self._storage.get_all_play_records(username)
        except MoonStoreError as e:
            logger.error("Failed to load play records of %s: %s", username, e)  # noqa: TRY400 Expected
            report.failed += 1
            play_records = {}

        for record_key, record in play_records.items():
            if await self._refresh_record(
                username, record_key, record, cache, report, self._storage.set_play_record
            ):
                report.play_records_updated += 1

        try:
            favorites = await self._storage.get_all_favorites(username)
        except MoonStoreError as e:
            logger.error("Failed to load favorites of %s: %s", username, e)  # noqa: TRY400 Expected
            report.failed += 1
            favorites = {}

        for record_key, favorite in favorites.items():
            if favorite.origin == "live":
                continue
            if await self._refresh_record(username, record_key, favorite, cache, report, self._storage.set_favorite):
                report.favorites_updated += 1

    async def _refresh_record(
        self,
        username: str,
        record_key: str,
        record: RecordT,
        cache: DetailCache,
        report: RefreshReport,
        save: Callable[[str, str, str, RecordT], Awaitable[None]],
    ) -> bool:
        """Update one record from its catalog detail, returns whether it was rewritten."""
        try:
            source, external_id = split_record_key(record_key)
        except ValidationError:
            logger.warning("Skipping record with invalid key %s of user %s", record_key, username)
            report.skipped += 1
            return False

        detail = await self._lookup(cache, source, external_id, record.title)
        if detail is None:
            report.skipped += 1
            return False

        if detail.episode_count <= 0 or detail.episode_count == record.total_episodes:
            return False

        updated = record.model_copy(
            update={
                "total_episodes": detail.episode_count,
                "title": detail.title or record.title,
                "cover": detail.poster or record.cover,
                "year": detail.year or record.year,
            }
        )
        try:
            await save(username, source, external_id, updated)
        except MoonStoreError as e:
            logger.error("Failed to save %s of user %s: %s", record_key, username, e)  # noqa: TRY400 Expected
            report.failed += 1
            return False

        logger.info(
            "Updated %s of user %s, episodes %d -> %d",
            record.title,
            username,
            record.total_episodes,
            detail.episode_count,
        )
        return True

    async def _lookup(self, cache: DetailCache, source: str, external_id: str, title: str) -> CatalogDetail | None:
        try:
            return await cache.get_or_fetch(
                f"{source}+{external_id}",
                lambda: self._catalog.fetch(source, external_id, title.strip()),
            )
        except UpstreamLookupFailed as e:
            logger.warning("Skipping %s+%s: %s", source, external_id, e.reason)
            return None
        except Exception:
            logger.exception("Unexpected error looking up %s+%s", source, external_id)
            return None
