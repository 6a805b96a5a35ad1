"""Config loading, setup, validating, writing."""

import json
import os
import typing
from datetime import UTC, datetime
from pathlib import Path
from typing import Literal, Self

from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from moonstore.constants import ENV_PREFIX
from moonstore.instances.paths import get_app_path_handler
from moonstore.utils.logger import LoggingConf, get_logger

from .reconcile import ReconcileConf
from .site import SiteConf
from .storage import StorageConf

logger = get_logger(__name__)

__all__ = [
    "MoonStoreConf",
    "ReconcileConf",
    "SiteConf",
    "StorageConf",
]


class MoonStoreConf(BaseSettings):
    """Settings Definition."""

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=".env" if not os.getenv("MOONSTORE_TESTING") else None,
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        json_file=get_app_path_handler().settings_file,
    )

    logging: LoggingConf = LoggingConf()
    storage: StorageConf = StorageConf()
    site: SiteConf = SiteConf()
    reconcile: ReconcileConf = ReconcileConf()
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    ROOT_USERNAME: str = ""

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003 Don't use but must include.
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Specify the priority of settings sources."""
        if os.getenv("MOONSTORE_TESTING"):
            return (
                init_settings,
                env_settings,
                JsonConfigSettingsSource(settings_cls),
            )
        return (  # pragma: no cover
            init_settings,
            dotenv_settings,
            env_settings,
            JsonConfigSettingsSource(settings_cls),
        )

    def write_backup_config(
        self,
        config_path: Path,
        existing_data: typing.Any,  # noqa: ANN401
        reason: str = "Validation has changed the config file",
    ) -> Path:
        """Keep a copy of the old config before we overwrite it."""
        time_str = datetime.now(tz=UTC).strftime("%Y-%m-%d_%H%M%S")
        config_backup_dir = config_path.parent / "config_backups"
        config_backup_dir.mkdir(parents=True, exist_ok=True)
        backup_file = config_backup_dir / f"{config_path.stem}_{time_str}{config_path.suffix}.bak"
        logger.warning("%s, backing up the old one to %s", reason, backup_file)
        with backup_file.open("w") as f:
            f.write(json.dumps(existing_data))
        return backup_file

    def write_config(self, config_path: Path | None = None) -> None:
        """Write the current settings to a JSON file."""
        if config_path is None:
            config_path = get_app_path_handler().settings_file

        config_path.parent.mkdir(parents=True, exist_ok=True)
        config_data = json.loads(self.model_dump_json())

        if config_path.exists():
            with config_path.open("r") as f:
                try:
                    existing_data = json.load(f)
                except json.JSONDecodeError:
                    logger.warning("Existing config file %s is not valid JSON", config_path)
                    existing_data = None

            if existing_data != config_data:
                self.write_backup_config(config_path, existing_data)
        else:
            logger.warning("Writing fresh config file at %s", config_path.absolute())

        with config_path.open("w") as f:
            f.write(self.model_dump_json(indent=2, exclude_none=False))

        logger.info("Config write complete: %s", config_path)

    @classmethod
    def force_load_config_file(cls, config_path: Path) -> Self:
        """Load the configuration file. File contents takes precedence over env vars."""
        if not config_path.is_file():
            logger.warning("Config file %s does not exist, loading defaults", config_path.absolute())
            return cls()

        logger.info("Loading config from %s", config_path.absolute())
        with config_path.open("r") as f:
            config = json.load(f)

        return cls(**config)

    def update_from(self, other: Self) -> None:
        """Update this instance in-place with values from another instance.

        Every module that imported the global settings object sees the change.
        """
        self.__dict__.update(other.__dict__)

    def resolve_sqlite_path(self) -> Path:
        """Where the sqlite backend keeps its file."""
        if self.storage.sqlite_path:
            return Path(self.storage.sqlite_path)
        return get_app_path_handler().database_file
