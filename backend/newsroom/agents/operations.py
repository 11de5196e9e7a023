"""Audit records of orchestrator invocations."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.constants import Capability, OperationPath, OperationStatus
from newsroom.models import AgentOperation
from newsroom.schemas.enrichment import OperationContext

logger = logging.getLogger(__name__)

AGENT_VERSION = "1.0"
MAX_SNAPSHOT_CHARS = 4000
MAX_NESTED_CHARS = 500
MAX_LIST_ITEMS = 20

# Blended USD per token used for rough cost reporting only
COST_PER_TOKEN = {
    Capability.SUMMARY: 6e-6,
    Capability.TRANSLATION: 6e-6,
    Capability.SEO: 1.6e-6,
    Capability.IMAGE: 6e-6,
    Capability.CATEGORY: 1.6e-6,
}


@dataclass
class OperationRecord:
    capability: Capability
    context: OperationContext
    path: OperationPath
    status: OperationStatus
    started_at: datetime
    completed_at: datetime
    duration_ms: int
    fallback_used: bool = False
    quality_score: float | None = None
    input_data: dict[str, Any] = field(default_factory=dict)
    output_data: dict[str, Any] | None = None
    error_message: str | None = None


def snapshot(data: dict[str, Any] | None) -> dict[str, Any] | None:
    """Bound large text fields so audit rows stay small."""
    if data is None:
        return None
    return _trim(data, MAX_SNAPSHOT_CHARS)


def _trim(value: Any, limit: int) -> Any:
    if isinstance(value, str):
        return value if len(value) <= limit else value[:limit] + "…"
    if isinstance(value, dict):
        return {key: _trim(item, limit) for key, item in value.items()}
    if isinstance(value, list):
        return [_trim(item, MAX_NESTED_CHARS) for item in value[:MAX_LIST_ITEMS]]
    return value


def estimate_tokens(*payloads: dict[str, Any] | None) -> int:
    return sum(len(str(p)) for p in payloads if p) // 4


class OperationRecorder:
    """Logs every orchestration and writes it to `agent_operations`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None):
        self.session_factory = session_factory

    async def record(self, record: OperationRecord) -> None:
        logger.info(
            "capability=%s path=%s status=%s fallback_used=%s duration_ms=%d quality=%s cluster=%s",
            record.capability.value,
            record.path.value,
            record.status.value,
            record.fallback_used,
            record.duration_ms,
            "n/a" if record.quality_score is None else f"{record.quality_score:.2f}",
            record.context.cluster_id,
        )
        if self.session_factory is None:
            return

        input_data = snapshot(record.input_data)
        output_data = snapshot(record.output_data)
        tokens = estimate_tokens(input_data, output_data)
        operation = AgentOperation(
            cluster_id=record.context.cluster_id,
            summary_id=record.context.summary_id,
            agent_type=record.capability.value,
            agent_version=AGENT_VERSION,
            path=record.path.value,
            operation_status=record.status.value,
            fallback_used=record.fallback_used,
            duration_ms=record.duration_ms,
            quality_score=record.quality_score,
            estimated_tokens=tokens,
            cost_estimate_usd=round(tokens * COST_PER_TOKEN[record.capability], 6),
            input_data=input_data,
            output_data=output_data,
            error_message=record.error_message[:2000] if record.error_message else None,
            started_at=record.started_at,
            completed_at=record.completed_at,
        )
        try:
            async with self.session_factory() as session:
                session.add(operation)
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to record %s operation: %s", record.capability.value, e)
