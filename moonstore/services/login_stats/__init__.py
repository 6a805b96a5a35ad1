"""Login statistics."""

from .store import LoginStatsStore

__all__ = [
    "LoginStatsStore",
]
