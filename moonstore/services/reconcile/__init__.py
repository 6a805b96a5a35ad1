"""Reconciliation job."""

from .models import CleanupMode, CleanupReport, CleanupResult, ReconcileReport, RefreshReport
from .orchestrator import ReconciliationOrchestrator
from .single_flight import SingleFlightCache

__all__ = [
    "CleanupMode",
    "CleanupReport",
    "CleanupResult",
    "ReconcileReport",
    "ReconciliationOrchestrator",
    "RefreshReport",
    "SingleFlightCache",
]
