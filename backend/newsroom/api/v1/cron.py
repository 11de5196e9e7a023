"""Cron API endpoints - trigger and inspect the scheduled pipeline."""

import logging
import secrets
from collections.abc import AsyncGenerator
from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from newsroom.config import Settings, get_settings
from newsroom.db import async_session
from newsroom.models import PipelineRun
from newsroom.schemas.pipeline import PipelineStats
from newsroom.services.pipeline import NewsPipeline, open_pipeline
from newsroom.services.pipeline_lock import DistributedLock

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["cron"])


class RunSummary(BaseModel):
    id: UUID
    status: str
    started_at: datetime
    finished_at: datetime | None = None
    notes: str | None = None


class CronStatus(BaseModel):
    """Response model for the pipeline status endpoint."""

    locked: bool
    locked_until: datetime | None = None
    last_run: RunSummary | None = None


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


def verify_cron_secret(
    settings: Annotated[Settings, Depends(get_settings)],
    authorization: Annotated[str | None, Header()] = None,
) -> None:
    """Reject requests without `Authorization: Bearer <CRON_SECRET>`."""
    expected = f"Bearer {settings.cron_secret}"
    if not settings.cron_secret or not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid cron secret",
        )


async def get_pipeline(
    settings: Annotated[Settings, Depends(get_settings)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> AsyncGenerator[NewsPipeline, None]:
    async with open_pipeline(settings, session_factory) as pipeline:
        yield pipeline


async def _run(pipeline: NewsPipeline, force: bool) -> PipelineStats:
    try:
        return await pipeline.run(force=force)
    except Exception as e:
        logger.exception("Cron pipeline run failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Pipeline failed: {type(e).__name__}: {e}",
        ) from e


@router.get("/run", response_model=PipelineStats, dependencies=[Depends(verify_cron_secret)])
async def run_pipeline_get(
    pipeline: Annotated[NewsPipeline, Depends(get_pipeline)],
    force: Annotated[bool, Query()] = False,
) -> PipelineStats:
    """Run the pipeline once (schedulers that can only send GET)."""
    return await _run(pipeline, force)


@router.post("/run", response_model=PipelineStats, dependencies=[Depends(verify_cron_secret)])
async def run_pipeline_post(
    pipeline: Annotated[NewsPipeline, Depends(get_pipeline)],
    force: Annotated[bool, Query()] = False,
) -> PipelineStats:
    """Run the pipeline once."""
    return await _run(pipeline, force)


@router.get("/status", response_model=CronStatus, dependencies=[Depends(verify_cron_secret)])
async def pipeline_status(
    settings: Annotated[Settings, Depends(get_settings)],
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> CronStatus:
    """Lock state and the most recent run."""
    lock = DistributedLock(session_factory)
    async with session_factory() as session:
        result = await session.execute(select(PipelineRun).order_by(PipelineRun.started_at.desc()).limit(1))
        last_run = result.scalar_one_or_none()
    return CronStatus(
        locked=await lock.is_locked(settings.lock_name),
        locked_until=await lock.locked_until(settings.lock_name),
        last_run=RunSummary.model_validate(last_run, from_attributes=True) if last_run else None,
    )
