"""Source model - RSS feed endpoints."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel

from newsroom.utils.time import utcnow


class Source(SQLModel, table=True):
    """
    News source model - one RSS feed endpoint.

    Sources are created from configuration and disabled rather than
    deleted when retired, so their articles keep a valid owner.
    """

    __tablename__ = "sources"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    # Source configuration
    name: str = Field(max_length=200)
    feed_url: str = Field(max_length=2048, unique=True, index=True)
    language: str = Field(default="unk", max_length=3, index=True)  # en, si, ta, unk
    priority: int = Field(default=100)  # lower is fetched first
    source_type: str = Field(default="rss", max_length=20)

    # Status
    enabled: bool = Field(default=True, index=True)
    last_fetched_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    last_error: str | None = Field(default=None, max_length=500)

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
