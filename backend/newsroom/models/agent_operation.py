"""Agent operation audit log."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column, DateTime, Text
from sqlmodel import Field, SQLModel

from newsroom.utils.time import utcnow


class AgentOperation(SQLModel, table=True):
    """
    One orchestrator invocation.

    Write-once; read only by operators comparing agent value against cost.
    """

    __tablename__ = "agent_operations"

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    cluster_id: UUID | None = Field(default=None, foreign_key="clusters.id", index=True)
    summary_id: UUID | None = Field(default=None, foreign_key="summaries.id")

    agent_type: str = Field(max_length=20, index=True)  # summary, translation, seo, image, category
    agent_version: str = Field(default="1.0", max_length=20)
    path: str = Field(max_length=10)  # agent, fallback
    operation_status: str = Field(max_length=10, index=True)  # success, failed, timeout
    fallback_used: bool = Field(default=False)

    duration_ms: int = Field(default=0)
    quality_score: float | None = Field(default=None)
    estimated_tokens: int | None = Field(default=None)
    cost_estimate_usd: float | None = Field(default=None)

    input_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))
    output_data: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON(none_as_null=True), nullable=True))
    error_message: str | None = Field(default=None, sa_column=Column(Text, nullable=True))

    started_at: datetime = Field(default_factory=utcnow, sa_type=DateTime(timezone=True))
    completed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
