"""Key namespacing, nothing outside the storage service should build these."""

import re

from moonstore.utils.helpers import make_record_key, require_name, require_username

USER_PREFIX = "user:"
PRESENCE_INDEX_KEY = "presence-index"
ADVERTISEMENT_INDEX_KEY = "advertisement-index"
API_CALL_LOG_KEY = "apicalllog"
ADMIN_CONFIG_KEY = "admin:config"
CACHE_PREFIX = "cache:"

CREDENTIAL_KEY_PATTERN = re.compile(r"^user:([^:]+):credential$")

# Categories of per user records addressed by "source+id"
PLAY_RECORD = "playrecord"
FAVORITE = "favorite"
SKIP_CONFIG = "skipconfig"


def user_key(username: str, suffix: str) -> str:
    username = require_username(username)
    return f"{USER_PREFIX}{username}:{suffix}"


def credential_key(username: str) -> str:
    return user_key(username, "credential")


def meta_key(username: str) -> str:
    return user_key(username, "meta")


def search_history_key(username: str) -> str:
    return user_key(username, "searchhistory")


def record_prefix(username: str, category: str) -> str:
    """Prefix shared by every record of one category for one user."""
    return user_key(username, f"{category}:")


def record_key(username: str, category: str, source: str, external_id: str) -> str:
    return record_prefix(username, category) + make_record_key(source, external_id)


def login_stats_key(username: str) -> str:
    return f"loginstats:{require_username(username)}"


def login_count_key(username: str) -> str:
    """Counter used by the atomic login stats strategy."""
    return f"{login_stats_key(username)}:count"


def session_key(session_id: str) -> str:
    return f"session:{require_name(session_id, 'session id')}"


def advertisement_key(ad_id: str) -> str:
    return f"advertisement:{require_name(ad_id, 'advertisement id')}"


def cache_key(key: str) -> str:
    return f"{CACHE_PREFIX}{require_name(key, 'cache key')}"


def username_from_credential_key(key: str) -> str | None:
    """Extract the username from a credential key, None for any other key."""
    match = CREDENTIAL_KEY_PATTERN.match(key)
    if match is None:
        return None
    return match.group(1)
