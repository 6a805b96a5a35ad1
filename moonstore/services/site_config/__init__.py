"""Site configuration backed by the stored admin config."""

from .store import SiteConfigStore

__all__ = [
    "SiteConfigStore",
]
