"""Upstream catalog lookups."""

from .client import CatalogClient, count_episodes
from .models import CatalogDetail, CatalogLookup

__all__ = [
    "CatalogClient",
    "CatalogDetail",
    "CatalogLookup",
    "count_episodes",
]
