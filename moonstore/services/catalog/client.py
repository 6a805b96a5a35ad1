"""Catalog detail lookups against Apple CMS style source APIs."""

import time
from typing import TYPE_CHECKING

import aiohttp
import pydantic
from yarl import URL

from moonstore.core.exceptions import UpstreamLookupFailed
from moonstore.utils.exception_handling import describe_aiohttp_exception, log_aiohttp_exception
from moonstore.utils.logger import get_logger

from .models import CatalogDetail, CatalogVideo, CatalogVideoList

if TYPE_CHECKING:
    from moonstore.services.api_log import ApiCallLogger
    from moonstore.services.storage.models import CatalogSource
else:
    ApiCallLogger = object
    CatalogSource = object

logger = get_logger(__name__)

PLAY_SOURCE_SEPARATOR = "$$$"
EPISODE_SEPARATOR = "#"
EPISODE_URL_SEPARATOR = "$"


def count_episodes(play_url: str | None) -> int:
    """Count episodes in the first play source of a vod_play_url.

    The format is 'name$url#name$url' per source, sources joined with '$$$'.
    Items without a url are not episodes.
    """
    if not play_url:
        return 0

    first_source = play_url.split(PLAY_SOURCE_SEPARATOR, 1)[0]
    count = 0
    for item in first_source.split(EPISODE_SEPARATOR):
        _, sep, url = item.partition(EPISODE_URL_SEPARATOR)
        # Some sources leave the name off and only give the url
        episode_url = url if sep else item
        if episode_url.strip():
            count += 1
    return count


def detail_from_video(video: CatalogVideo, fallback_title: str) -> CatalogDetail:
    year = str(video.vod_year).strip() if video.vod_year is not None else ""
    return CatalogDetail(
        title=(video.vod_name or "").strip() or fallback_title.strip() or None,
        poster=video.vod_pic or None,
        year=year or None,
        episode_count=count_episodes(video.vod_play_url),
    )


class CatalogClient:
    """Looks titles up on the configured catalog sources."""

    def __init__(
        self,
        sources: list[CatalogSource],
        timeout_seconds: float = 10.0,
        api_logger: ApiCallLogger | None = None,
    ) -> None:
        """Sources are keyed by their `key`, calls are logged through api_logger if given."""
        self._sources = {source.key: source for source in sources}
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._api_logger = api_logger

    def detail_url(self, source: CatalogSource, external_id: str) -> URL:
        return URL(source.api).update_query(ac="videolist", ids=external_id)

    async def fetch(self, source: str, external_id: str, fallback_title: str) -> CatalogDetail | None:
        """Get the detail of one title.

        Returns None for an unknown source or when the source has no such title,
        raises UpstreamLookupFailed if the source can't be reached or answers nonsense.
        """
        catalog_source = self._sources.get(source)
        if catalog_source is None:
            logger.warning("Unknown catalog source %s, skipping %s", source, external_id)
            return None

        url = self.detail_url(catalog_source, external_id)
        started = time.monotonic()
        try:
            video_list = await self._get_video_list(url)
        except (aiohttp.ClientError, TimeoutError) as e:
            log_aiohttp_exception(logger, url, e, f"Catalog lookup of {source}+{external_id} failed")
            reason = describe_aiohttp_exception(e)
            await self._log_call(catalog_source, started, success=False, error=reason)
            raise UpstreamLookupFailed(source, external_id, reason) from e
        except (ValueError, pydantic.ValidationError) as e:
            reason = f"Invalid response: {type(e).__name__}"
            logger.error("Catalog lookup of %s+%s returned an invalid response", source, external_id)  # noqa: TRY400 Expected
            await self._log_call(catalog_source, started, success=False, error=reason)
            raise UpstreamLookupFailed(source, external_id, reason) from e

        await self._log_call(catalog_source, started, success=True)

        if not video_list.videos:
            logger.debug("Catalog source %s has no title %s", source, external_id)
            return None

        return detail_from_video(video_list.videos[0], fallback_title)

    async def _get_video_list(self, url: URL) -> CatalogVideoList:
        async with aiohttp.ClientSession() as session:
            async with session.get(str(url), timeout=self._timeout) as resp:
                resp.raise_for_status()
                # Plenty of sources send JSON as text/html
                data = await resp.json(content_type=None)
        return CatalogVideoList.model_validate(data)

    async def _log_call(
        self,
        source: CatalogSource,
        started: float,
        *,
        success: bool,
        error: str | None = None,
    ) -> None:
        if self._api_logger is None:
            return
        response_time = int((time.monotonic() - started) * 1000)
        await self._api_logger.log_api_call(
            source.key,
            source.name,
            success=success,
            error=error,
            response_time=response_time,
        )
