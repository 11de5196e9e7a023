"""Article service - stores fetched feed items with de-duplication."""

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from newsroom.db.postgres import upsert_insert
from newsroom.models import Article
from newsroom.schemas.feed import FeedItem, FetchResult
from newsroom.schemas.pipeline import IngestReport, StageError
from newsroom.services.language import detect_language
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 100


def article_row(result: FetchResult, item: FeedItem) -> dict[str, Any]:
    """Column values for a new article built from a fetched item."""
    sample = " ".join(filter(None, [item.title, item.excerpt]))
    return {
        "id": uuid4(),
        "source_id": result.source_id,
        "title": item.title[:500],
        "url": item.url[:2048],
        "guid": item.guid[:2048] if item.guid else None,
        "dedup_key": item.dedup_key[:2048],
        "content_text": item.content_text,
        "excerpt": item.excerpt[:1000] if item.excerpt else None,
        "language": detect_language(sample, hint=result.language),
        "image_url": item.image_url if item.image_url and len(item.image_url) <= 2048 else None,
        "image_urls": item.image_urls,
        "published_at": item.published_at,
        "fetched_at": utcnow(),
        "cluster_id": None,
    }


class ArticleService:
    """Service for ingesting fetched articles."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def store_fetch_results(self, results: list[FetchResult]) -> IngestReport:
        """
        Insert items from successful fetches.

        An article is created once per (source, dedup_key); repeats within
        the batch and rows already stored are counted as duplicates. Each
        source is committed on its own, so a database error on one source
        is recorded and the others are still stored.
        """
        report = IngestReport()
        seen: set[tuple[Any, str]] = set()
        for result in results:
            if not result.success or not result.items:
                continue
            rows: list[dict[str, Any]] = []
            for item in result.items:
                key = (result.source_id, item.dedup_key)
                if key in seen:
                    report.duplicates += 1
                    continue
                seen.add(key)
                rows.append(article_row(result, item))

            try:
                inserted = await self._insert(rows)
            except SQLAlchemyError as e:
                await self.session.rollback()
                logger.error("Failed to store articles from %s: %s", result.source_name, e)
                report.failed += len(rows)
                report.errors.append(
                    StageError(source_id=result.source_id, stage="ingest", message=f"{type(e).__name__}: {e}"[:500])
                )
                continue
            report.inserted += inserted
            report.duplicates += len(rows) - inserted

        logger.info(
            "Stored %d new articles (%d duplicates, %d failed)", report.inserted, report.duplicates, report.failed
        )
        return report

    async def _insert(self, rows: list[dict[str, Any]]) -> int:
        inserted = 0
        for start in range(0, len(rows), INSERT_CHUNK_SIZE):
            chunk = rows[start : start + INSERT_CHUNK_SIZE]
            stmt = (
                upsert_insert(self.session, Article)
                .values(chunk)
                .on_conflict_do_nothing(index_elements=["source_id", "dedup_key"])
                .returning(Article.id)
            )
            result = await self.session.execute(stmt)
            inserted += len(result.all())
        await self.session.commit()
        return inserted
