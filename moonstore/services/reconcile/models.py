"""Pydantic models for reconciliation results."""

from typing import Literal

from pydantic import BaseModel

CleanupMode = Literal["init", "force"]


class CleanupReport(BaseModel):
    """Outcome of the automatic inactive user cleanup."""

    enabled: bool = False
    checked: int = 0
    deleted: list[str] = []
    failed: list[str] = []
    error: str | None = None


class RefreshReport(BaseModel):
    """Outcome of refreshing episode counts."""

    users: int = 0
    play_records_updated: int = 0
    favorites_updated: int = 0
    skipped: int = 0
    failed: int = 0
    error: str | None = None


class ReconcileReport(BaseModel):
    """Outcome of one reconciliation run."""

    started_at: int
    finished_at: int = 0
    refresh: RefreshReport = RefreshReport()
    cleanup: CleanupReport = CleanupReport()


class CleanupResult(BaseModel):
    """Outcome of a manual cleanup requested by an admin."""

    mode: CleanupMode
    removed: list[str] = []
    initialized: list[str] = []

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    @property
    def initialized_count(self) -> int:
        return len(self.initialized)
