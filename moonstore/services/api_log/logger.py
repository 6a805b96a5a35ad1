"""Recording and summarising calls to upstream catalog sources."""

from typing import TYPE_CHECKING

from pydantic import BaseModel

from moonstore.core.exceptions import MoonStoreError
from moonstore.services.storage.models import ApiCallLog
from moonstore.utils.helpers import now_ms
from moonstore.utils.logger import get_logger

if TYPE_CHECKING:
    from moonstore.services.storage import StorageService
else:
    StorageService = object

logger = get_logger(__name__)


class SourceCallStats(BaseModel):
    total: int = 0
    success: int = 0
    success_rate: float = 0.0


class ApiCallStats(BaseModel):
    """Summary over the most recent calls."""

    total: int = 0
    success: int = 0
    failed: int = 0
    success_rate: float = 0.0  # Percent
    avg_response_time: float = 0.0  # ms, successful calls only
    by_source: dict[str, SourceCallStats] = {}


def _percent(part: int, whole: int) -> float:
    return (part / whole) * 100 if whole else 0.0


def summarise_api_calls(logs: list[ApiCallLog]) -> ApiCallStats:
    """Build stats from a list of log entries."""
    total = len(logs)
    success = sum(1 for log in logs if log.success)

    response_times = [log.response_time for log in logs if log.success and log.response_time is not None]
    avg_response_time = sum(response_times) / len(response_times) if response_times else 0.0

    by_source: dict[str, SourceCallStats] = {}
    for log in logs:
        source_stats = by_source.setdefault(log.source, SourceCallStats())
        source_stats.total += 1
        if log.success:
            source_stats.success += 1
    for source_stats in by_source.values():
        source_stats.success_rate = _percent(source_stats.success, source_stats.total)

    return ApiCallStats(
        total=total,
        success=success,
        failed=total - success,
        success_rate=_percent(success, total),
        avg_response_time=avg_response_time,
        by_source=by_source,
    )


class ApiCallLogger:
    """Fire and forget API call logging, failures here never affect the caller."""

    def __init__(self, storage: StorageService) -> None:
        self._storage = storage

    async def log_api_call(
        self,
        source: str,
        source_name: str,
        *,
        success: bool,
        error: str | None = None,
        response_time: int | None = None,
    ) -> None:
        entry = ApiCallLog(
            timestamp=now_ms(),
            source=source,
            source_name=source_name,
            success=success,
            error=error,
            response_time=response_time,
        )
        try:
            await self._storage.add_api_call_log(entry)
        except MoonStoreError as e:
            logger.error("Failed to record API call to %s: %s", source, e)  # noqa: TRY400 Expected when storage is down
        except Exception:
            logger.exception("Unexpected error recording API call to %s", source)

    async def get_api_call_stats(self, limit: int = 100) -> ApiCallStats:
        """Stats over the last `limit` calls, zeroes if storage can't be read."""
        try:
            logs = await self._storage.get_api_call_logs(limit)
        except MoonStoreError as e:
            logger.error("Failed to read API call logs: %s", e)  # noqa: TRY400 Expected when storage is down
            return ApiCallStats()
        return summarise_api_calls(logs)
