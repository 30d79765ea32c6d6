from __future__ import annotations

from datetime import UTC, datetime, timedelta

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CacheMetadata(BaseModel):
    """Contents of the ``<key>.meta`` file written next to each payload."""

    model_config = ConfigDict(populate_by_name=True)

    url: str
    timestamp: datetime  # Capture time, ISO-8601 on disk
    content_type: str = Field(alias="contentType")

    @field_validator("timestamp")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v


class CacheEntry(BaseModel):
    """A complete, parsed cache entry (payload plus metadata)."""

    url: str
    payload: bytes
    content_type: str
    timestamp: datetime


class ResponseMeta(BaseModel):
    url: str
    status_code: int
    content_type: str = "text/html"

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code <= 299


class CacheResponse(BaseModel):
    """What every caller of ``FetchEngine.fetch`` receives."""

    payload: bytes
    meta: ResponseMeta
    cache_hit: bool
    cache_age: timedelta | None = None  # Only set on a hit
    cache_ttl: timedelta | None = None  # Remaining on a hit, full TTL on a miss
