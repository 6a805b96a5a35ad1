from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path
else:
    Path = object


class AppPathsHelper:
    """Locations of everything we keep in the instance directory."""

    def __init__(self, instance_path: Path) -> None:
        self.set_instance_path(instance_path)

    def set_instance_path(self, instance_path: Path) -> None:
        self._instance_path = instance_path
        self._instance_path.mkdir(parents=True, exist_ok=True)

    @property
    def instance_path(self) -> Path:
        return self._instance_path

    @property
    def settings_file(self) -> Path:
        return self._instance_path / "config.json"

    @property
    def database_file(self) -> Path:
        return self._instance_path / "moonstore.db"

    @property
    def config_backup_dir(self) -> Path:
        return self._instance_path / "config_backups"
