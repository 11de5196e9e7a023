"""Source service - configuration sync and fetch bookkeeping."""

import logging
from pathlib import Path

import yaml
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from newsroom.models import Source
from newsroom.schemas.feed import FetchResult
from newsroom.schemas.source import SourceConfig, SourceRef, SourcesFile, SyncReport
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)


def load_sources_file(path: str | Path) -> list[SourceConfig]:
    """Read and validate the sources YAML file."""
    with open(path, encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    return SourcesFile.model_validate(raw).sources


class SourceService:
    """Service for managing feed sources."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_enabled_sources(self) -> list[SourceRef]:
        """Enabled sources, lowest priority value first."""
        result = await self.session.execute(
            select(Source).where(Source.enabled == True).order_by(Source.priority, Source.name)  # noqa: E712
        )
        return [
            SourceRef(
                id=source.id,
                name=source.name,
                feed_url=source.feed_url,
                language=source.language,
                priority=source.priority,
            )
            for source in result.scalars().all()
        ]

    async def sync_from_config(self, entries: list[SourceConfig]) -> SyncReport:
        """
        Make the sources table match configuration.

        Sources are matched by feed URL. Entries missing from the
        configuration are disabled, never deleted.
        """
        report = SyncReport()
        result = await self.session.execute(select(Source))
        existing = {source.feed_url: source for source in result.scalars().all()}
        configured: set[str] = set()

        for entry in entries:
            feed_url = str(entry.feed_url)
            configured.add(feed_url)
            source = existing.get(feed_url)
            if source is None:
                self.session.add(
                    Source(
                        name=entry.name,
                        feed_url=feed_url,
                        language=entry.language,
                        priority=entry.priority,
                        source_type=entry.source_type.value,
                        enabled=entry.enabled,
                    )
                )
                report.created += 1
                continue

            source.name = entry.name
            source.language = entry.language
            source.priority = entry.priority
            source.source_type = entry.source_type.value
            source.enabled = entry.enabled
            source.updated_at = utcnow()
            report.updated += 1

        for feed_url, source in existing.items():
            if feed_url not in configured and source.enabled:
                source.enabled = False
                source.updated_at = utcnow()
                report.disabled += 1

        await self.session.commit()
        logger.info(
            "Synced sources: %d created, %d updated, %d disabled",
            report.created,
            report.updated,
            report.disabled,
        )
        return report

    async def record_fetch_results(self, results: list[FetchResult]) -> None:
        """Store last fetch time and error per source."""
        now = utcnow()
        for result in results:
            await self.session.execute(
                update(Source)
                .where(Source.id == result.source_id)
                .values(
                    last_fetched_at=now,
                    last_error=None if result.success else (result.error or "unknown error")[:500],
                    updated_at=now,
                )
            )
        await self.session.commit()
