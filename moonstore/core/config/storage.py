from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, field_validator

from moonstore.constants import (
    DEFAULT_API_LOG_CAP,
    DEFAULT_RETRY_ATTEMPTS,
    DEFAULT_RETRY_BASE_DELAY,
    DEFAULT_SEARCH_HISTORY_LIMIT,
    DEFAULT_SESSION_TTL_SECONDS,
)
from moonstore.utils.logger import get_logger

if TYPE_CHECKING:
    from pydantic import ValidationInfo
else:
    ValidationInfo = object

logger = get_logger(__name__)

BackendName = Literal["memory", "redis", "sqlite"]

_POSITIVE_INT_DEFAULTS: dict[str, int] = {
    "retry_attempts": DEFAULT_RETRY_ATTEMPTS,
    "session_ttl_seconds": DEFAULT_SESSION_TTL_SECONDS,
    "api_log_cap": DEFAULT_API_LOG_CAP,
    "search_history_limit": DEFAULT_SEARCH_HISTORY_LIMIT,
}


class StorageConf(BaseModel):
    """Storage backend configuration definition."""

    model_config = ConfigDict(extra="ignore")

    backend: BackendName = "memory"
    redis_url: str = "redis://localhost:6379/0"
    sqlite_path: str = ""  # Empty means moonstore.db in the instance directory
    retry_attempts: int = DEFAULT_RETRY_ATTEMPTS
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    session_ttl_seconds: int = DEFAULT_SESSION_TTL_SECONDS
    api_log_cap: int = DEFAULT_API_LOG_CAP
    search_history_limit: int = DEFAULT_SEARCH_HISTORY_LIMIT
    login_stats_atomic: bool = False

    @field_validator(
        "retry_attempts",
        "session_ttl_seconds",
        "api_log_cap",
        "search_history_limit",
        mode="after",
    )
    @classmethod
    def validate_positive(cls, value: int, info: ValidationInfo) -> int:
        """Counts and lifetimes must be at least one."""
        if value < 1:
            default = _POSITIVE_INT_DEFAULTS[str(info.field_name)]
            logger.warning("%s '%s' must be at least 1, setting to default of %s", info.field_name, value, default)
            return default
        return value

    @field_validator("retry_base_delay", mode="after")
    @classmethod
    def validate_retry_base_delay(cls, value: float) -> float:
        """Negative delays make no sense."""
        if value < 0:
            logger.warning(
                "retry_base_delay '%s' must not be negative, setting to default of %s",
                value,
                DEFAULT_RETRY_BASE_DELAY,
            )
            return DEFAULT_RETRY_BASE_DELAY
        return value
