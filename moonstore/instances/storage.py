from moonstore.backends import create_backend
from moonstore.instances.config import settings
from moonstore.services.storage import StorageService

_storage: StorageService | None = None


def set_storage(storage: StorageService | None) -> None:
    """Set (or clear) the global StorageService instance."""
    global _storage  # noqa: PLW0603 Lazy Loading
    _storage = storage


def get_storage() -> StorageService:
    """Get the global StorageService, building the backend from settings on first use."""
    global _storage  # noqa: PLW0603 Lazy Loading
    if _storage is None:
        backend = create_backend(settings.storage, settings.resolve_sqlite_path())
        _storage = StorageService(
            backend,
            retry_attempts=settings.storage.retry_attempts,
            retry_base_delay=settings.storage.retry_base_delay,
            session_ttl_seconds=settings.storage.session_ttl_seconds,
            api_log_cap=settings.storage.api_log_cap,
            search_history_limit=settings.storage.search_history_limit,
        )
    return _storage
