"""Cluster model - one real-world story grouping similar articles."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel

from newsroom.utils.time import utcnow


class Cluster(SQLModel, table=True):
    """
    Story cluster.

    Holds the provisional headline taken from the first member article,
    membership counters, the embedding centroid used for matching and
    every field written by the enrichment capabilities.
    """

    __tablename__ = "clusters"

    id: UUID = Field(default_factory=uuid4, primary_key=True)

    # Headlines
    headline: str = Field(max_length=500)  # provisional, in `language`
    headline_en: str | None = Field(default=None, max_length=500)
    headline_si: str | None = Field(default=None, max_length=1000)
    headline_ta: str | None = Field(default=None, max_length=1000)
    headline_quality_en: float | None = Field(default=None)
    headline_quality_si: float | None = Field(default=None)
    headline_quality_ta: float | None = Field(default=None)
    language: str = Field(default="en", max_length=3)

    # Lifecycle
    status: str = Field(default="draft", max_length=20, index=True)

    # Classification
    category: str | None = Field(default=None, max_length=50, index=True)
    topics: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    keywords: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    district: str | None = Field(default=None, max_length=100)
    primary_entity: str | None = Field(default=None, max_length=200)
    event_type: str | None = Field(default=None, max_length=100)

    # SEO
    slug: str | None = Field(default=None, max_length=200, unique=True)
    meta_title_en: str | None = Field(default=None, max_length=200)
    meta_title_si: str | None = Field(default=None, max_length=400)
    meta_title_ta: str | None = Field(default=None, max_length=400)
    meta_description_en: str | None = Field(default=None, max_length=500)
    meta_description_si: str | None = Field(default=None, max_length=1000)
    meta_description_ta: str | None = Field(default=None, max_length=1000)

    # Image
    image_url: str | None = Field(default=None, max_length=2048)
    image_relevance_score: float | None = Field(default=None)
    image_quality_score: float | None = Field(default=None)

    # Membership
    article_count: int = Field(default=0)
    source_count: int = Field(default=0)
    centroid: list[float] | None = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))

    # Timestamps
    first_seen_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    last_seen_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    published_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    expires_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True), index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    def headline_for(self, language: str) -> str | None:
        return getattr(self, f"headline_{language}", None)

    def headline_quality_for(self, language: str) -> float | None:
        return getattr(self, f"headline_quality_{language}", None)
