"""Upstream API call logging."""

from .logger import ApiCallLogger, ApiCallStats, SourceCallStats, summarise_api_calls

__all__ = [
    "ApiCallLogger",
    "ApiCallStats",
    "SourceCallStats",
    "summarise_api_calls",
]
