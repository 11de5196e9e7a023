"""Summary model - generated text per cluster."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Text
from sqlmodel import Field, SQLModel

from newsroom.utils.time import utcnow


class Summary(SQLModel, table=True):
    """One row per cluster, rewritten in place on regeneration."""

    __tablename__ = "summaries"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    cluster_id: UUID = Field(foreign_key="clusters.id", unique=True, index=True)

    summary_en: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    summary_si: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    summary_ta: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    quality_en: float | None = Field(default=None)
    quality_si: float | None = Field(default=None)
    quality_ta: float | None = Field(default=None)
    source_lang: str = Field(default="en", max_length=3)
    key_facts: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    # Versioning
    model: str | None = Field(default=None, max_length=100)
    prompt_version: str | None = Field(default=None, max_length=20)
    version: int = Field(default=1)
    source_count_at_generation: int = Field(default=0)

    created_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))

    def text_for(self, language: str) -> str | None:
        return getattr(self, f"summary_{language}", None)

    def quality_for(self, language: str) -> float | None:
        return getattr(self, f"quality_{language}", None)
