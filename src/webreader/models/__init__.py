from __future__ import annotations

from webreader.models.cache import CacheEntry, CacheMetadata, CacheResponse, ResponseMeta
from webreader.models.tools import (
    ClearCacheInput,
    ClearCacheOutput,
    FetchPageInput,
    FetchPageOutput,
    FetchStatistics,
    Link,
    SearchMatch,
    SearchPageInput,
    SearchPageOutput,
    SearchWebInput,
    SearchWebOutput,
)

__all__ = [
    # cache
    "CacheEntry",
    "CacheMetadata",
    "CacheResponse",
    "ResponseMeta",
    # tools
    "FetchPageInput",
    "FetchPageOutput",
    "SearchPageInput",
    "SearchPageOutput",
    "SearchMatch",
    "SearchWebInput",
    "SearchWebOutput",
    "ClearCacheInput",
    "ClearCacheOutput",
    "FetchStatistics",
    "Link",
]
