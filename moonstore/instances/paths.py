"""Instance directory handler, shared by config and the sqlite backend."""

from typing import TYPE_CHECKING

from moonstore.constants import DEFAULT_INSTANCE_PATH
from moonstore.services.app_paths_helper import AppPathsHelper

if TYPE_CHECKING:
    from pathlib import Path
else:
    Path = object

_instance_paths: AppPathsHelper | None = None


def get_app_path_handler() -> AppPathsHelper:
    """Get the instance path handler, falling back to the default instance directory."""
    if _instance_paths is None:
        setup_app_path_handler(DEFAULT_INSTANCE_PATH)
    assert _instance_paths is not None  # noqa: S101 Set just above
    return _instance_paths


def setup_app_path_handler(instance_path: Path) -> None:
    """Point the application at an instance directory."""
    global _instance_paths  # noqa: PLW0603 Lazy Loading
    _instance_paths = AppPathsHelper(instance_path=instance_path)
