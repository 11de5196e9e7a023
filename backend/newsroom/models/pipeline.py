"""Pipeline coordination models: the distributed lock and run log."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Text
from sqlmodel import Field, SQLModel

from newsroom.utils.time import utcnow


class PipelineLock(SQLModel, table=True):
    """Single row per lock name holding the lease expiry."""

    __tablename__ = "pipeline_locks"

    name: str = Field(primary_key=True, max_length=100)
    locked_until: datetime = Field(sa_type=DateTime(timezone=True))
    holder: str | None = Field(default=None, max_length=64)
    updated_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))


class PipelineRun(SQLModel, table=True):
    """One execution window of the scheduled pipeline."""

    __tablename__ = "pipeline_runs"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    status: str = Field(default="started", max_length=10, index=True)
    started_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True), index=True)
    finished_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    notes: str | None = Field(default=None, sa_column=Column(Text, nullable=True))
    stats: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))
