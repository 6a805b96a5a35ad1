"""Storage backends."""

from typing import TYPE_CHECKING

from moonstore.utils.logger import get_logger

from .base import KeyValueBackend
from .memory import MemoryBackend

if TYPE_CHECKING:
    from pathlib import Path

    from moonstore.core.config import StorageConf
else:
    Path = object
    StorageConf = object

logger = get_logger(__name__)

__all__ = [
    "KeyValueBackend",
    "MemoryBackend",
    "create_backend",
]


def create_backend(storage_conf: StorageConf, sqlite_path: Path) -> KeyValueBackend:
    """Build the configured backend, call this once per process."""
    if storage_conf.backend == "redis":
        from .redis import RedisBackend  # noqa: PLC0415 Only import redis when we use it

        backend: KeyValueBackend = RedisBackend(url=storage_conf.redis_url)
    elif storage_conf.backend == "sqlite":
        from .sqlite import SQLiteBackend  # noqa: PLC0415 Only import sqlmodel when we use it

        backend = SQLiteBackend(database_path=sqlite_path)
    else:
        backend = MemoryBackend()

    logger.info("Using %s storage backend", backend.name)
    return backend
