"""Article model for fetched feed items."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Text, UniqueConstraint
from sqlmodel import Field, SQLModel

from newsroom.utils.time import utcnow


class Article(SQLModel, table=True):
    """
    Fetched article model - one item from a source feed.

    Created once per (source, dedup_key) pair. Only `cluster_id` changes
    after insert.
    """

    __tablename__ = "articles"
    __table_args__ = (UniqueConstraint("source_id", "dedup_key", name="uq_articles_source_dedup"),)

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    source_id: UUID = Field(foreign_key="sources.id", index=True)

    # Article content
    title: str = Field(max_length=500)
    url: str = Field(max_length=2048)
    guid: str | None = Field(default=None, max_length=2048)
    dedup_key: str = Field(max_length=2048)
    content_text: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    excerpt: str | None = Field(default=None, max_length=1000)
    language: str = Field(default="unk", max_length=3, index=True)

    # Media
    image_url: str | None = Field(default=None, max_length=2048)
    image_urls: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Timestamps
    published_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True), index=True)
    fetched_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)

    # Grouping
    cluster_id: UUID | None = Field(default=None, foreign_key="clusters.id", index=True)
