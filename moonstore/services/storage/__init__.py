"""Storage service, retry wrapper and the persisted models."""

from .retry import RetryingClient
from .service import StorageService

__all__ = [
    "RetryingClient",
    "StorageService",
]
