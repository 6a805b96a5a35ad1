from pydantic import BaseModel, ConfigDict, field_validator

from moonstore.utils.logger import get_logger

logger = get_logger(__name__)

MIN_INACTIVE_DAYS = 1
MAX_INACTIVE_DAYS = 365
DEFAULT_INACTIVE_DAYS = 7


class SiteConf(BaseModel):
    """Default site policy, used until an admin saves one."""

    model_config = ConfigDict(extra="ignore")

    auto_clean_inactive_users: bool = False
    inactive_user_days: int = DEFAULT_INACTIVE_DAYS

    @field_validator("inactive_user_days", mode="after")
    @classmethod
    def validate_inactive_user_days(cls, value: int) -> int:
        """Clamp the inactivity threshold to a sane range."""
        if value < MIN_INACTIVE_DAYS:
            logger.warning("inactive_user_days '%s' is below %s, clamping", value, MIN_INACTIVE_DAYS)
            return MIN_INACTIVE_DAYS
        if value > MAX_INACTIVE_DAYS:
            logger.warning("inactive_user_days '%s' is above %s, clamping", value, MAX_INACTIVE_DAYS)
            return MAX_INACTIVE_DAYS
        return value
