"""Distributed pipeline lock backed by a single row per lock name."""

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import uuid4

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.db.postgres import upsert_insert
from newsroom.models import PipelineLock

logger = logging.getLogger(__name__)

DEFAULT_LOCK_NAME = "cron_pipeline"
DEFAULT_TTL = timedelta(minutes=10)


class DistributedLock:
    """
    Lease-based mutual exclusion shared by every pipeline instance.

    Acquisition is one conditional upsert, so two callers racing for the
    same name cannot both win. Release only moves `locked_until` to now;
    a holder that crashes before releasing is recovered once the lease
    expires. Times come from the database clock so every instance agrees
    on lease expiry; pass `clock` to pin time in tests.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] | None = None,
    ):
        self.session_factory = session_factory
        self.clock = clock
        self.holder = uuid4().hex

    async def try_acquire(self, name: str = DEFAULT_LOCK_NAME, ttl: timedelta = DEFAULT_TTL) -> bool:
        """Take the lock for `ttl` if it is free or its lease has expired."""
        async with self.session_factory() as session:
            now = await self._now(session)
            stmt = upsert_insert(session, PipelineLock).values(
                name=name,
                locked_until=now + ttl,
                holder=self.holder,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["name"],
                set_={
                    "locked_until": stmt.excluded.locked_until,
                    "holder": stmt.excluded.holder,
                    "updated_at": stmt.excluded.updated_at,
                },
                where=PipelineLock.locked_until <= now,
            ).returning(PipelineLock.name)

            result = await session.execute(stmt)
            acquired = result.first() is not None
            await session.commit()

        if acquired:
            logger.info("Acquired lock %s until %s", name, now + ttl)
        else:
            logger.info("Lock %s is held by another run", name)
        return acquired

    async def release(self, name: str = DEFAULT_LOCK_NAME) -> None:
        """Expire our lease on `name`. Failures are logged, never raised."""
        try:
            async with self.session_factory() as session:
                now = await self._now(session)
                await session.execute(
                    update(PipelineLock)
                    .where(PipelineLock.name == name, PipelineLock.holder == self.holder)
                    .values(locked_until=now, updated_at=now)
                )
                await session.commit()
            logger.info("Released lock %s", name)
        except SQLAlchemyError as e:
            logger.error("Failed to release lock %s, it will expire on its own: %s", name, e)

    async def is_locked(self, name: str = DEFAULT_LOCK_NAME) -> bool:
        """Whether any holder has an unexpired lease on `name`."""
        async with self.session_factory() as session:
            now = await self._now(session)
            result = await session.execute(
                select(PipelineLock.name).where(PipelineLock.name == name, PipelineLock.locked_until > now)
            )
            return result.first() is not None

    async def locked_until(self, name: str = DEFAULT_LOCK_NAME) -> datetime | None:
        async with self.session_factory() as session:
            result = await session.execute(select(PipelineLock.locked_until).where(PipelineLock.name == name))
            return result.scalar_one_or_none()

    async def _now(self, session: AsyncSession) -> datetime:
        if self.clock is not None:
            return self.clock()
        result = await session.execute(select(func.now()))
        return result.scalar_one()
