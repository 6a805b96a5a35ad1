"""Pydantic models for the catalog client."""

from typing import Protocol

from pydantic import BaseModel, Field


class CatalogDetail(BaseModel):
    """What the reconciliation job needs to know about a title."""

    title: str | None = None
    poster: str | None = None
    year: str | None = None
    episode_count: int = 0


class CatalogVideo(BaseModel):
    """One entry of the `list` in an Apple CMS style videolist response."""

    vod_id: int | str | None = None
    vod_name: str | None = None
    vod_pic: str | None = None
    vod_year: int | str | None = None
    vod_play_from: str | None = None
    vod_play_url: str | None = None


class CatalogVideoList(BaseModel):
    """Apple CMS style `?ac=videolist` response, only the parts we use."""

    code: int | str | None = None
    msg: str | None = None
    videos: list[CatalogVideo] = Field(default=[], alias="list")


class CatalogLookup(Protocol):
    """Anything that can look up a title by source and id."""

    async def fetch(self, source: str, external_id: str, fallback_title: str) -> CatalogDetail | None: ...
