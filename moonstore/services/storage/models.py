"""Pydantic models for everything the storage service persists."""

from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from moonstore.core.config.site import DEFAULT_INACTIVE_DAYS, MAX_INACTIVE_DAYS, MIN_INACTIVE_DAYS

UserRole = Literal["user", "admin", "owner"]


class CamelModel(BaseModel):
    """Stored and served with camelCase keys, constructed with either."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# region Per user records
class PlayRecord(BaseModel):
    """Where a user got to in a title."""

    title: str
    source_name: str
    cover: str = ""
    year: str = ""
    index: int = 0  # Episode index
    total_episodes: int = 0
    play_time: int = 0  # Seconds
    total_time: int = 0  # Seconds
    save_time: int = 0
    search_title: str = ""


class Favorite(BaseModel):
    """A title the user starred."""

    source_name: str
    total_episodes: int = 0
    title: str
    year: str = ""
    cover: str = ""
    save_time: int = 0
    search_title: str = ""
    origin: Literal["vod", "live"] = "vod"


class SkipConfig(BaseModel):
    """Intro and outro skipping for one title."""

    enable: bool = False
    intro_time: float = Field(default=0, ge=0)
    outro_time: float = Field(default=0, ge=0)


class UserMeta(CamelModel):
    """Registration and activity timestamps."""

    created_at: int
    last_active_at: int
    login_count: int = 0


class LoginStats(CamelModel):
    """Login ledger used to decide whether an account is inactive, zero means never."""

    login_count: int = 0
    first_login_time: int = 0
    last_login_time: int = 0
    last_login_date: int = 0  # Older writers only set this one, mirrors last_login_time


# region Global records
class UserSession(CamelModel):
    """One browser session, kept alive by heartbeats."""

    username: str
    session_id: str
    last_active_at: int
    ip_address: str | None = None
    user_agent: str | None = None


class ApiCallLog(CamelModel):
    """One call to an upstream catalog source."""

    timestamp: int
    source: str
    source_name: str
    success: bool
    error: str | None = None
    response_time: int | None = None  # ms


class Advertisement(CamelModel):
    """An advertisement slot entry."""

    id: str
    position: str
    type: Literal["image", "video", "js"]
    title: str
    material_url: str
    click_url: str | None = None
    width: int | None = None
    height: int | None = None
    start_date: int
    end_date: int
    enabled: bool = True
    priority: int = 0  # Higher wins
    created_at: int = 0
    updated_at: int = 0

    @model_validator(mode="after")
    def validate_dates(self) -> Self:
        """An advertisement must not end before it starts."""
        if self.start_date > self.end_date:
            msg = f"Advertisement {self.id} start_date {self.start_date} is after end_date {self.end_date}"
            raise ValueError(msg)
        return self

    def is_active(self, now: int, position: str | None = None) -> bool:
        """Enabled, inside its date range and, if asked, in the right slot."""
        if position is not None and self.position != position:
            return False
        return self.enabled and self.start_date <= now <= self.end_date


# region Admin config
class SitePolicy(BaseModel):
    """Inactive account cleanup policy."""

    auto_clean_inactive_users: bool = False
    inactive_user_days: int = DEFAULT_INACTIVE_DAYS

    @field_validator("inactive_user_days", mode="after")
    @classmethod
    def validate_inactive_user_days(cls, value: int) -> int:
        """Zero means unset, anything else is clamped into range."""
        if value == 0:
            return DEFAULT_INACTIVE_DAYS
        return max(MIN_INACTIVE_DAYS, min(value, MAX_INACTIVE_DAYS))


class UserEntry(BaseModel):
    """One row of the user roster."""

    username: str
    role: UserRole = "user"
    banned: bool | None = None


class UserConfig(BaseModel):
    users: list[UserEntry] = []


class CatalogSource(BaseModel):
    """An upstream catalog API."""

    key: str
    name: str
    api: str
    detail: str | None = None
    disabled: bool = False


class AdminConfig(BaseModel):
    """Site wide settings editable from the admin page."""

    model_config = ConfigDict(extra="ignore")

    site_config: SitePolicy = SitePolicy()
    user_config: UserConfig = UserConfig()
    source_config: list[CatalogSource] = []
