"""The storage service, the only thing that knows how entities map to backend keys."""

import json
import secrets
import typing
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

import pydantic

from moonstore.constants import (
    DEFAULT_API_LOG_CAP,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_SEARCH_HISTORY_LIMIT,
    DEFAULT_SESSION_TTL_SECONDS,
)
from moonstore.core.exceptions import AlreadyExists, NotFound, ValidationError
from moonstore.utils.helpers import now_ms, require_name, require_username
from moonstore.utils.logger import get_logger

from . import keys
from .models import (
    AdminConfig,
    Advertisement,
    ApiCallLog,
    Favorite,
    LoginStats,
    PlayRecord,
    SkipConfig,
    UserMeta,
    UserSession,
)
from .retry import RetryingClient

if TYPE_CHECKING:
    from moonstore.backends import KeyValueBackend
else:
    KeyValueBackend = object

logger = get_logger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

API_LOG_MEMBER_NONCE_BYTES = 4


def _require_secret(secret: str) -> None:
    """Credentials are stored verbatim, so only reject empty ones."""
    if not secret:
        msg = "password must not be empty"
        raise ValidationError(msg)


class StorageService:
    """Domain level storage over any key-value backend.

    Every backend call goes through a RetryingClient. Reads of absent entities
    return None, payloads that no longer validate are logged and treated as absent.
    """

    def __init__(
        self,
        backend: KeyValueBackend,
        *,
        retry_attempts: int = DEFAULT_RETRY_ATTEMPTS,
        retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY,
        session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS,
        api_log_cap: int = DEFAULT_API_LOG_CAP,
        search_history_limit: int = DEFAULT_SEARCH_HISTORY_LIMIT,
    ) -> None:
        """Wrap the backend, it should be the one shared handle for this process."""
        self.backend = backend
        self._client = RetryingClient(backend, attempts=retry_attempts, base_delay=retry_base_delay)
        self.session_ttl_seconds = session_ttl_seconds
        self.api_log_cap = api_log_cap
        self.search_history_limit = search_history_limit

    # region Helpers
    async def _call(self, fn: Callable[..., Awaitable[typing.Any]], *args: typing.Any) -> typing.Any:  # noqa: ANN401 Passes backend results through
        return await self._client.call(fn, *args)

    @staticmethod
    def _dump(model: pydantic.BaseModel) -> str:
        return model.model_dump_json(by_alias=True)

    @staticmethod
    def _load(raw: str | None, model: type[ModelT], key: str) -> ModelT | None:
        if raw is None:
            return None
        try:
            return model.model_validate_json(raw)
        except pydantic.ValidationError as e:
            logger.warning("Ignoring invalid %s stored at %s: %s", model.__name__, key, e.error_count())
            return None

    async def _get_model(self, key: str, model: type[ModelT]) -> ModelT | None:
        return self._load(await self._call(self.backend.get, key), model, key)

    async def _get_all_records(self, username: str, category: str, model: type[ModelT]) -> dict[str, ModelT]:
        """Map of "source+id" to record for one user and category."""
        prefix = keys.record_prefix(username, category)
        record_keys: list[str] = await self._call(self.backend.keys, prefix)
        if not record_keys:
            return {}

        raw_values: list[str | None] = await self._call(self.backend.mget, record_keys)
        records: dict[str, ModelT] = {}
        for key, raw in zip(record_keys, raw_values, strict=True):
            record = self._load(raw, model, key)
            if record is not None:
                records[key.removeprefix(prefix)] = record
        return records

    async def _delete_prefix(self, prefix: str) -> int:
        found: list[str] = await self._call(self.backend.keys, prefix)
        if not found:
            return 0
        return await self._call(self.backend.delete, *found)

    # region Play records
    async def get_play_record(self, username: str, source: str, external_id: str) -> PlayRecord | None:
        key = keys.record_key(username, keys.PLAY_RECORD, source, external_id)
        return await self._get_model(key, PlayRecord)

    async def set_play_record(self, username: str, source: str, external_id: str, record: PlayRecord) -> None:
        key = keys.record_key(username, keys.PLAY_RECORD, source, external_id)
        await self._call(self.backend.set, key, self._dump(record))

    async def get_all_play_records(self, username: str) -> dict[str, PlayRecord]:
        return await self._get_all_records(username, keys.PLAY_RECORD, PlayRecord)

    async def delete_play_record(self, username: str, source: str, external_id: str) -> None:
        key = keys.record_key(username, keys.PLAY_RECORD, source, external_id)
        await self._call(self.backend.delete, key)

    # region Favorites
    async def get_favorite(self, username: str, source: str, external_id: str) -> Favorite | None:
        key = keys.record_key(username, keys.FAVORITE, source, external_id)
        return await self._get_model(key, Favorite)

    async def set_favorite(self, username: str, source: str, external_id: str, favorite: Favorite) -> None:
        key = keys.record_key(username, keys.FAVORITE, source, external_id)
        await self._call(self.backend.set, key, self._dump(favorite))

    async def get_all_favorites(self, username: str) -> dict[str, Favorite]:
        return await self._get_all_records(username, keys.FAVORITE, Favorite)

    async def delete_favorite(self, username: str, source: str, external_id: str) -> None:
        key = keys.record_key(username, keys.FAVORITE, source, external_id)
        await self._call(self.backend.delete, key)

    # region Skip configs
    async def get_skip_config(self, username: str, source: str, external_id: str) -> SkipConfig | None:
        key = keys.record_key(username, keys.SKIP_CONFIG, source, external_id)
        return await self._get_model(key, SkipConfig)

    async def set_skip_config(self, username: str, source: str, external_id: str, config: SkipConfig) -> None:
        key = keys.record_key(username, keys.SKIP_CONFIG, source, external_id)
        await self._call(self.backend.set, key, self._dump(config))

    async def get_all_skip_configs(self, username: str) -> dict[str, SkipConfig]:
        return await self._get_all_records(username, keys.SKIP_CONFIG, SkipConfig)

    async def delete_skip_config(self, username: str, source: str, external_id: str) -> None:
        key = keys.record_key(username, keys.SKIP_CONFIG, source, external_id)
        await self._call(self.backend.delete, key)

    # region Users
    async def register_user(self, username: str, secret: str) -> None:
        """Store the credential for a new user, does not create any other rows."""
        key = keys.credential_key(username)
        _require_secret(secret)
        if await self._call(self.backend.exists, key):
            msg = f"User {username} already exists"
            raise AlreadyExists(msg)

        await self._call(self.backend.set, key, secret)
        logger.info("Registered user %s", username)

    async def verify_user(self, username: str, secret: str) -> bool:
        """Compare the stored credential verbatim, no hashing happens at this layer."""
        stored = await self._call(self.backend.get, keys.credential_key(username))
        return stored is not None and stored == secret

    async def check_user_exist(self, username: str) -> bool:
        """Existence probe, never reads the credential."""
        return bool(await self._call(self.backend.exists, keys.credential_key(username)))

    async def change_password(self, username: str, secret: str) -> None:
        key = keys.credential_key(username)
        _require_secret(secret)
        if not await self._call(self.backend.exists, key):
            msg = f"User {username} does not exist"
            raise NotFound(msg)
        await self._call(self.backend.set, key, secret)

    async def delete_user(self, username: str) -> None:
        """Delete a user and everything they own.

        Each category is attempted even if an earlier one failed, the first
        failure is re-raised at the end. Deleting a deleted user does nothing.
        """
        username = require_username(username)

        cascade: list[tuple[str, Callable[[], Awaitable[typing.Any]]]] = [
            ("credential", lambda: self._call(self.backend.delete, keys.credential_key(username))),
            ("play records", lambda: self._delete_prefix(keys.record_prefix(username, keys.PLAY_RECORD))),
            ("favorites", lambda: self._delete_prefix(keys.record_prefix(username, keys.FAVORITE))),
            ("skip configs", lambda: self._delete_prefix(keys.record_prefix(username, keys.SKIP_CONFIG))),
            ("search history", lambda: self._call(self.backend.delete, keys.search_history_key(username))),
            (
                "login stats",
                lambda: self._call(
                    self.backend.delete,
                    keys.login_stats_key(username),
                    keys.login_count_key(username),
                ),
            ),
            ("user meta", lambda: self._call(self.backend.delete, keys.meta_key(username))),
        ]

        first_error: Exception | None = None
        for category, delete_category in cascade:
            try:
                await delete_category()
            except Exception as e:  # noqa: BLE001 Re-raised below once every category has been attempted
                logger.error("Failed to delete %s of user %s: %s", category, username, e)  # noqa: TRY400 Not unexpected
                if first_error is None:
                    first_error = e

        if first_error is not None:
            raise first_error

        logger.info("Deleted user %s", username)

    async def get_all_users(self) -> list[str]:
        """Every username that has a credential."""
        user_keys: list[str] = await self._call(self.backend.keys, keys.USER_PREFIX)
        usernames = [keys.username_from_credential_key(key) for key in user_keys]
        return sorted(username for username in usernames if username is not None)

    # region User meta
    async def get_user_meta(self, username: str) -> UserMeta | None:
        return await self._get_model(keys.meta_key(username), UserMeta)

    async def set_user_meta(self, username: str, meta: UserMeta) -> UserMeta:
        """Write the meta row, created_at of an existing row is kept."""
        key = keys.meta_key(username)
        existing = await self._get_model(key, UserMeta)
        if existing is not None:
            meta = meta.model_copy(update={"created_at": existing.created_at})
        await self._call(self.backend.set, key, self._dump(meta))
        return meta

    async def touch_user_meta(self, username: str, now: int | None = None) -> UserMeta | None:
        """Move last_active_at forward if the user has a meta row."""
        if now is None:
            now = now_ms()

        key = keys.meta_key(username)
        meta = await self._get_model(key, UserMeta)
        if meta is None:
            return None
        if now > meta.last_active_at:
            meta.last_active_at = now
            await self._call(self.backend.set, key, self._dump(meta))
        return meta

    # region API call log
    async def add_api_call_log(self, entry: ApiCallLog) -> None:
        """Append a log entry, then drop the oldest so at most api_log_cap remain.

        Members get a random prefix so identical entries in the same millisecond are all kept.
        """
        member = f"{secrets.token_hex(API_LOG_MEMBER_NONCE_BYTES)}:{self._dump(entry)}"
        await self._call(self.backend.zadd, keys.API_CALL_LOG_KEY, member, entry.timestamp)
        count: int = await self._call(self.backend.zcard, keys.API_CALL_LOG_KEY)
        if count > self.api_log_cap:
            await self._call(self.backend.zremrangebyrank, keys.API_CALL_LOG_KEY, 0, count - self.api_log_cap - 1)

    async def get_api_call_logs(self, limit: int = 100) -> list[ApiCallLog]:
        """Newest first."""
        if limit < 1:
            msg = f"limit must be at least 1, got {limit}"
            raise ValidationError(msg)

        members: list[str] = await self._call(self.backend.zrevrange, keys.API_CALL_LOG_KEY, 0, limit - 1)
        # Entries written without a prefix are bare JSON
        raw_logs = [member if member.startswith("{") else member.partition(":")[2] for member in members]
        logs = [self._load(raw, ApiCallLog, keys.API_CALL_LOG_KEY) for raw in raw_logs]
        return [log for log in logs if log is not None]

    # region Sessions
    async def set_user_session(self, session: UserSession) -> None:
        """Upsert the session row with a ttl and move it in the presence index."""
        key = keys.session_key(session.session_id)
        require_username(session.username)
        await self._call(self.backend.set, key, self._dump(session), self.session_ttl_seconds)
        await self._call(self.backend.zadd, keys.PRESENCE_INDEX_KEY, session.session_id, session.last_active_at)

    async def get_user_session(self, session_id: str) -> UserSession | None:
        return await self._get_model(keys.session_key(session_id), UserSession)

    async def delete_user_session(self, session_id: str) -> None:
        key = keys.session_key(session_id)
        await self._call(self.backend.delete, key)
        await self._call(self.backend.zrem, keys.PRESENCE_INDEX_KEY, session_id)

    async def get_sessions_in_window(self, cutoff: int, until: int | None = None) -> list[UserSession]:
        """Live sessions whose last heartbeat is in [cutoff, until], inclusive."""
        max_score = float("inf") if until is None else until
        session_ids: list[str] = await self._call(
            self.backend.zrange_by_score, keys.PRESENCE_INDEX_KEY, cutoff, max_score
        )
        if not session_ids:
            return []

        session_keys = [keys.session_key(session_id) for session_id in session_ids]
        raw_sessions: list[str | None] = await self._call(self.backend.mget, session_keys)

        sessions: list[UserSession] = []
        for key, raw in zip(session_keys, raw_sessions, strict=True):
            session = self._load(raw, UserSession, key)
            # Expired rows can linger in the index until the next prune
            if session is not None and cutoff <= session.last_active_at <= max_score:
                sessions.append(session)
        return sessions

    async def prune_presence_index(self, cutoff: int) -> int:
        """Drop index entries strictly older than cutoff, session rows are left to expire."""
        return await self._call(self.backend.zremrangebyscore, keys.PRESENCE_INDEX_KEY, float("-inf"), cutoff - 1)

    # region Login stats
    async def get_login_stats(self, username: str) -> LoginStats | None:
        stats = await self._get_model(keys.login_stats_key(username), LoginStats)
        if stats is not None and not stats.last_login_date:
            stats.last_login_date = stats.last_login_time
        return stats

    async def set_login_stats(self, username: str, stats: LoginStats) -> None:
        await self._call(self.backend.set, keys.login_stats_key(username), self._dump(stats))

    async def increment_login_count(self, username: str) -> int:
        """Atomically bump the separate login counter, returns the new count."""
        return await self._call(self.backend.incr, keys.login_count_key(username))

    async def get_login_count(self, username: str) -> int | None:
        """The separate login counter, None if it was never incremented."""
        raw = await self._call(self.backend.get, keys.login_count_key(username))
        if raw is None:
            return None
        try:
            return int(raw)
        except ValueError:
            logger.warning("Ignoring invalid login counter for %s: %s", username, raw)
            return None

    # region Advertisements
    async def create_advertisement(self, ad: Advertisement) -> None:
        key = keys.advertisement_key(ad.id)
        await self._call(self.backend.set, key, self._dump(ad))
        await self._call(self.backend.sadd, keys.ADVERTISEMENT_INDEX_KEY, ad.id)

    async def update_advertisement(
        self,
        ad_id: str,
        updates: dict[str, typing.Any],
        now: int | None = None,
    ) -> Advertisement:
        """Merge updates (keyed by field name) into an existing advertisement."""
        key = keys.advertisement_key(ad_id)
        existing = await self._get_model(key, Advertisement)
        if existing is None:
            msg = f"Advertisement {ad_id} not found"
            raise NotFound(msg)

        unknown = set(updates) - set(Advertisement.model_fields)
        if unknown:
            msg = f"Unknown advertisement fields: {', '.join(sorted(unknown))}"
            raise ValidationError(msg)

        merged = existing.model_dump() | updates
        merged["id"] = existing.id
        merged["updated_at"] = now if now is not None else now_ms()
        try:
            updated = Advertisement.model_validate(merged)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

        await self._call(self.backend.set, key, self._dump(updated))
        return updated

    async def delete_advertisement(self, ad_id: str) -> None:
        await self._call(self.backend.delete, keys.advertisement_key(ad_id))
        await self._call(self.backend.srem, keys.ADVERTISEMENT_INDEX_KEY, ad_id)

    async def get_advertisement(self, ad_id: str) -> Advertisement | None:
        return await self._get_model(keys.advertisement_key(ad_id), Advertisement)

    async def get_all_advertisements(self) -> list[Advertisement]:
        """Highest priority first."""
        ad_ids: set[str] = await self._call(self.backend.smembers, keys.ADVERTISEMENT_INDEX_KEY)
        if not ad_ids:
            return []

        ad_keys = [keys.advertisement_key(ad_id) for ad_id in sorted(ad_ids)]
        raw_ads: list[str | None] = await self._call(self.backend.mget, ad_keys)
        ads = [self._load(raw, Advertisement, key) for key, raw in zip(ad_keys, raw_ads, strict=True)]
        return sorted((ad for ad in ads if ad is not None), key=lambda ad: -ad.priority)

    async def get_active_advertisements(self, position: str | None = None, now: int | None = None) -> list[Advertisement]:
        if now is None:
            now = now_ms()
        return [ad for ad in await self.get_all_advertisements() if ad.is_active(now, position)]

    # region Search history
    async def get_search_history(self, username: str) -> list[str]:
        """Newest first."""
        return await self._call(self.backend.lrange, keys.search_history_key(username), 0, -1)

    async def add_search_history(self, username: str, keyword: str) -> None:
        key = keys.search_history_key(username)
        keyword = require_name(keyword, "keyword")
        await self._call(self.backend.lrem, key, keyword)
        await self._call(self.backend.lpush, key, keyword)
        await self._call(self.backend.ltrim, key, 0, self.search_history_limit - 1)

    async def delete_search_history(self, username: str, keyword: str | None = None) -> None:
        """Remove one keyword, or the whole history when no keyword is given."""
        key = keys.search_history_key(username)
        if keyword:
            await self._call(self.backend.lrem, key, keyword)
        else:
            await self._call(self.backend.delete, key)

    # region Cache
    async def get_cache(self, key: str) -> typing.Any:  # noqa: ANN401 Cached data is arbitrary JSON
        full_key = keys.cache_key(key)
        raw = await self._call(self.backend.get, full_key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring invalid JSON cached at %s", full_key)
            return None

    async def set_cache(self, key: str, data: typing.Any, expire_seconds: int | None = None) -> None:  # noqa: ANN401
        if expire_seconds is not None and expire_seconds < 1:
            msg = f"expire_seconds must be at least 1, got {expire_seconds}"
            raise ValidationError(msg)
        await self._call(self.backend.set, keys.cache_key(key), json.dumps(data), expire_seconds)

    async def delete_cache(self, key: str) -> None:
        await self._call(self.backend.delete, keys.cache_key(key))

    async def clear_cache(self, prefix: str = "") -> int:
        """Delete every cache entry whose key starts with prefix, returns how many went."""
        removed = await self._delete_prefix(f"{keys.CACHE_PREFIX}{prefix}")
        logger.info("Cleared %d cache entries with prefix '%s'", removed, prefix)
        return removed

    # region Admin config
    async def get_admin_config(self) -> AdminConfig | None:
        return await self._get_model(keys.ADMIN_CONFIG_KEY, AdminConfig)

    async def set_admin_config(self, config: AdminConfig) -> None:
        await self._call(self.backend.set, keys.ADMIN_CONFIG_KEY, self._dump(config))

    # region Lifecycle
    async def clear_all_data(self) -> None:
        """Delete every user and the admin config."""
        for username in await self.get_all_users():
            await self.delete_user(username)
        await self._call(self.backend.delete, keys.ADMIN_CONFIG_KEY)
        logger.warning("Cleared all user data")

    async def ping(self) -> bool:
        return await self._call(self.backend.ping)

    async def close(self) -> None:
        await self.backend.close()
