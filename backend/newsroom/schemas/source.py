"""Source configuration schemas."""

from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, HttpUrl


class SourceType(str, Enum):
    """Type of news source."""

    RSS = "rss"
    ATOM = "atom"


class SourceConfig(BaseModel):
    """One entry of the sources YAML file."""

    name: str = Field(..., min_length=1, max_length=200)
    feed_url: HttpUrl = Field(..., description="URL of the RSS/Atom feed")
    language: str = Field(default="unk", pattern="^(en|si|ta|unk)$")
    priority: int = Field(default=100, ge=0)
    source_type: SourceType = Field(default=SourceType.RSS)
    enabled: bool = True


class SourcesFile(BaseModel):
    """Top-level shape of the sources YAML file."""

    sources: list[SourceConfig] = Field(default_factory=list)


class SourceRef(BaseModel):
    """Detached snapshot of a source handed to fetch workers."""

    id: UUID
    name: str
    feed_url: str
    language: str = "unk"
    priority: int = 100


class SyncReport(BaseModel):
    created: int = 0
    updated: int = 0
    disabled: int = 0
