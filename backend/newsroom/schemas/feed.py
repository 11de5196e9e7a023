"""Fetch-layer schemas: normalized feed items and per-source results."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field


class FeedItem(BaseModel):
    """A normalized RSS/Atom entry."""

    title: str = "Untitled"
    url: str
    guid: str | None = None
    published_at: datetime | None = None
    content_text: str | None = None
    excerpt: str | None = None
    image_url: str | None = None
    image_urls: list[str] = Field(default_factory=list)

    @property
    def dedup_key(self) -> str:
        return self.guid or self.url


class FetchResult(BaseModel):
    """Outcome of fetching one source; failures are data, not exceptions."""

    source_id: UUID
    source_name: str
    language: str
    items: list[FeedItem] = Field(default_factory=list)
    success: bool
    error: str | None = None
    duration_ms: int = 0


class LanguageStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    items: int = 0


class FetchStats(BaseModel):
    total: int = 0
    successful: int = 0
    failed: int = 0
    items: int = 0
    by_language: dict[str, LanguageStats] = Field(default_factory=dict)


class FetchReport(BaseModel):
    results: list[FetchResult] = Field(default_factory=list)
    stats: FetchStats = Field(default_factory=FetchStats)
    duration_ms: int = 0
