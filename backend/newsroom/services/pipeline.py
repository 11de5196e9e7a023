"""News pipeline - one locked run of fetch, ingest, cluster and enrich."""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from newsroom.agents.base import AgentRunner
from newsroom.agents.factory import build_orchestrator
from newsroom.config import Settings
from newsroom.constants import RunStatus
from newsroom.llm.generator import TextGenerator
from newsroom.models import PipelineRun
from newsroom.schemas.pipeline import PipelineStats, StageError
from newsroom.services.article_service import ArticleService
from newsroom.services.cluster_repository import ClusterRepository
from newsroom.services.cluster_worker import ClusterWorker
from newsroom.services.clustering import ClusteringEngine
from newsroom.services.embeddings import Embedder, get_embedder, similarity_threshold
from newsroom.services.fetch_pool import FeedFetcher, build_http_fetcher, create_http_client
from newsroom.services.parallel_processor import ParallelClusterProcessor
from newsroom.services.pipeline_lock import DistributedLock
from newsroom.services.source_service import SourceService
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)


class NewsPipeline:
    """
    Scheduled entry point.

    At most one run executes at a time across all instances; a second
    caller gets a skipped result instead of waiting. The lock is released
    however the run ends.
    """

    def __init__(
        self,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
        fetcher: FeedFetcher,
        clustering: ClusteringEngine,
        processor: ParallelClusterProcessor,
        lock: DistributedLock,
        repository: ClusterRepository,
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.fetcher = fetcher
        self.clustering = clustering
        self.processor = processor
        self.lock = lock
        self.repository = repository

    async def run(self, force: bool = False) -> PipelineStats:
        started = time.perf_counter()
        stats = PipelineStats()
        lock_name = self.settings.lock_name

        if not await self.lock.try_acquire(lock_name, timedelta(minutes=self.settings.lock_ttl_minutes)):
            stats.skipped = True
            stats.reason = "locked"
            return stats

        try:
            if not force and await self._ran_recently():
                stats.skipped = True
                stats.reason = "too_soon"
                await self._record_skip(stats.reason)
                logger.info(
                    "Last successful run is newer than %d minutes, skipping",
                    self.settings.min_run_interval_minutes,
                )
                return stats

            run_id = await self._start_run()
            stats.run_id = run_id
            logger.info("Pipeline run %s started", run_id)
            try:
                await self._execute(stats)
            except Exception as e:
                stats.duration_ms = int((time.perf_counter() - started) * 1000)
                logger.exception("Pipeline run %s failed", run_id)
                await self._finish_run(run_id, RunStatus.ERROR, stats, notes=f"{type(e).__name__}: {e}")
                raise

            stats.duration_ms = int((time.perf_counter() - started) * 1000)
            await self._finish_run(run_id, RunStatus.SUCCESS, stats)
            logger.info(
                "Pipeline run %s finished in %dms: %d sources, %d new articles, %d clusters processed, %d errors",
                run_id,
                stats.duration_ms,
                stats.sources,
                stats.articles_inserted,
                stats.processing.clusters_processed,
                len(stats.errors),
            )
            return stats
        finally:
            await self.lock.release(lock_name)

    async def _execute(self, stats: PipelineStats) -> None:
        async with self.session_factory() as session:
            sources = await SourceService(session).get_enabled_sources()
        stats.sources = len(sources)

        report = await self.fetcher.fetch_all(sources)
        stats.fetched_items = report.stats.items
        for result in report.results:
            if not result.success:
                stats.errors.append(
                    StageError(source_id=result.source_id, stage="fetch", message=result.error or "unknown error")
                )

        try:
            async with self.session_factory() as session:
                await SourceService(session).record_fetch_results(report.results)
        except SQLAlchemyError as e:
            logger.error("Failed to record fetch results: %s", e)
            stats.errors.append(StageError(stage="record_fetch", message=str(e)))

        async with self.session_factory() as session:
            ingest = await ArticleService(session).store_fetch_results(report.results)
        stats.articles_inserted = ingest.inserted
        stats.errors.extend(ingest.errors)

        stats.clustering = await self.clustering.cluster_pending()
        stats.errors.extend(stats.clustering.errors)

        pending = await self.repository.clusters_needing_enrichment(
            timedelta(hours=self.settings.cluster_window_hours),
            limit=self.settings.enrichment_batch_limit,
            quality_threshold=self.settings.agent_quality_threshold,
        )
        cluster_ids: list[UUID] = list(dict.fromkeys([*stats.clustering.cluster_ids, *pending]))
        stats.processing = await self.processor.process_many(cluster_ids)
        stats.errors.extend(stats.processing.errors)

    async def _ran_recently(self) -> bool:
        interval = self.settings.min_run_interval_minutes
        if interval <= 0:
            return False
        async with self.session_factory() as session:
            result = await session.execute(
                select(PipelineRun.id).where(
                    PipelineRun.status == RunStatus.SUCCESS.value,
                    PipelineRun.finished_at >= utcnow() - timedelta(minutes=interval),
                )
            )
            return result.first() is not None

    async def _start_run(self) -> UUID:
        run = PipelineRun(status=RunStatus.STARTED.value, started_at=utcnow())
        async with self.session_factory() as session:
            session.add(run)
            await session.commit()
        return run.id

    async def _record_skip(self, reason: str) -> None:
        now = utcnow()
        async with self.session_factory() as session:
            session.add(PipelineRun(status=RunStatus.SKIPPED.value, started_at=now, finished_at=now, notes=reason))
            await session.commit()

    async def _finish_run(
        self, run_id: UUID, status: RunStatus, stats: PipelineStats, notes: str | None = None
    ) -> None:
        try:
            async with self.session_factory() as session:
                run = await session.get(PipelineRun, run_id)
                if run is None:
                    return
                run.status = status.value
                run.finished_at = utcnow()
                run.notes = notes
                run.stats = stats.model_dump(mode="json")
                await session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to close pipeline run %s: %s", run_id, e)


def build_pipeline(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    http_client: httpx.AsyncClient,
    generator: TextGenerator | None = None,
    runner: AgentRunner | None = None,
    embedder: Embedder | None = None,
) -> NewsPipeline:
    """Wire a pipeline from settings; collaborators can be replaced for tests."""
    embedder = embedder or get_embedder(settings)
    orchestrator = build_orchestrator(settings, session_factory, generator, runner, http_client)
    repository = ClusterRepository(session_factory, summary_model=settings.summary_model)
    worker = ClusterWorker(orchestrator, repository, quality_threshold=settings.agent_quality_threshold)
    return NewsPipeline(
        settings=settings,
        session_factory=session_factory,
        fetcher=build_http_fetcher(http_client, settings),
        clustering=ClusteringEngine(
            session_factory,
            embedder,
            similarity_threshold=similarity_threshold(settings, embedder),
            window_hours=settings.cluster_window_hours,
            expiry_days=settings.cluster_expiry_days,
            embed_concurrency=settings.embedding_concurrency,
        ),
        processor=ParallelClusterProcessor(worker, repository.save, settings.parallel_cluster_workers),
        lock=DistributedLock(session_factory),
        repository=repository,
    )


@asynccontextmanager
async def open_pipeline(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncIterator[NewsPipeline]:
    """Pipeline bound to an HTTP client that is closed on exit."""
    async with create_http_client(settings) as client:
        yield build_pipeline(settings, session_factory, client)
