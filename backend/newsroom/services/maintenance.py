"""Housekeeping jobs run outside the scheduled pipeline."""

import logging
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.constants import ClusterStatus
from newsroom.models import Cluster
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)


async def archive_expired_clusters(
    session_factory: async_sessionmaker[AsyncSession], now: datetime | None = None
) -> int:
    """Archive clusters past `expires_at`. Returns how many were archived."""
    now = now or utcnow()
    async with session_factory() as session:
        result = await session.execute(
            update(Cluster)
            .where(
                Cluster.status != ClusterStatus.ARCHIVED.value,
                Cluster.expires_at != None,  # noqa: E711
                Cluster.expires_at <= now,
            )
            .values(status=ClusterStatus.ARCHIVED.value, updated_at=now)
        )
        await session.commit()
    archived = result.rowcount or 0
    logger.info("Archived %d expired clusters", archived)
    return archived
