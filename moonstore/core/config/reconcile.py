from pydantic import BaseModel, ConfigDict, field_validator

from moonstore.constants import DEFAULT_PRESENCE_WINDOW_MINUTES
from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CATALOG_TIMEOUT = 10.0
DEFAULT_USER_CONCURRENCY = 4
HIGH_USER_CONCURRENCY = 16


class ReconcileConf(BaseModel):
    """Reconciliation job and presence configuration definition."""

    model_config = ConfigDict(extra="ignore")

    catalog_timeout_seconds: float = DEFAULT_CATALOG_TIMEOUT
    user_concurrency: int = DEFAULT_USER_CONCURRENCY
    presence_window_minutes: int = DEFAULT_PRESENCE_WINDOW_MINUTES

    @field_validator("catalog_timeout_seconds", mode="after")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            logger.warning(
                "catalog_timeout_seconds '%s' must be positive, setting to default of %s",
                value,
                DEFAULT_CATALOG_TIMEOUT,
            )
            return DEFAULT_CATALOG_TIMEOUT
        return value

    @field_validator("user_concurrency", mode="after")
    @classmethod
    def validate_user_concurrency(cls, value: int) -> int:
        """Each concurrent user can hit the catalog sources, keep it modest."""
        if value < 1:
            logger.warning(
                "user_concurrency '%s' must be at least 1, setting to default of %s",
                value,
                DEFAULT_USER_CONCURRENCY,
            )
            return DEFAULT_USER_CONCURRENCY

        if value > HIGH_USER_CONCURRENCY:
            logger.warning(
                "You have set user_concurrency to a high value (%d), catalog sources may rate limit you.",
                value,
            )
        return value

    @field_validator("presence_window_minutes", mode="after")
    @classmethod
    def validate_presence_window(cls, value: int) -> int:
        if value < 1:
            logger.warning(
                "presence_window_minutes '%s' must be at least 1, setting to default of %s",
                value,
                DEFAULT_PRESENCE_WINDOW_MINUTES,
            )
            return DEFAULT_PRESENCE_WINDOW_MINUTES
        return value
