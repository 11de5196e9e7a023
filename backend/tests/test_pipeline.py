"""End-to-end pipeline runs against SQLite, a mocked feed server and fake models."""

from collections.abc import AsyncGenerator
from datetime import timedelta
from uuid import uuid4

import httpx
import pytest
from conftest import SUMMARY_TEXT, FakeGenerator, FakeRunner
from sqlalchemy import func
from sqlmodel import select

from newsroom.agents.factory import build_orchestrator
from newsroom.models import AgentOperation, Article, Cluster, PipelineRun, Source, Summary
from newsroom.schemas.enrichment import ArticleSnippet
from newsroom.schemas.source import SourceConfig
from newsroom.services import article_service
from newsroom.services.article_service import article_row
from newsroom.services.cluster_repository import ClusterRepository
from newsroom.services.cluster_worker import ClusterWorker, dominant_language
from newsroom.services.pipeline import NewsPipeline, build_pipeline
from newsroom.services.pipeline_lock import DistributedLock
from newsroom.services.source_service import SourceService
from newsroom.utils.time import utcnow


def rss(title: str, link: str, description: str, image: str, pub_date: str = "Mon, 02 Mar 2026 06:00:00 +0000") -> bytes:
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
  <channel>
    <title>Feed</title>
    <item>
      <title>{title}</title>
      <link>{link}</link>
      <pubDate>{pub_date}</pubDate>
      <description>{description}</description>
      <media:content url="{image}" medium="image"/>
    </item>
  </channel>
</rss>""".encode()


FEEDS = {
    "/mirror.xml": rss(
        "Floods close roads across the western province",
        "https://mirror.test/news/floods-roads",
        "Heavy rain flooded the western province and closed main roads.",
        "https://mirror.test/photos/flood-roads.jpg",
        "Mon, 02 Mar 2026 05:00:00 +0000",
    ),
    "/derana.xml": rss(
        "Flood waters force families into shelters",
        "https://derana.test/news/flood-shelters",
        "Families in low lying areas moved to shelters as flood waters rose.",
        "https://derana.test/photos/flood-shelter.jpg",
    ),
    "/lankadeepa.xml": rss(
        "බස්නාහිර පළාතේ ගංවතුර තත්ත්වය",
        "https://lankadeepa.test/news/flood",
        "අධික වර්ෂාව නිසා බස්නාහිර පළාතේ ගංවතුර තත්ත්වයක් ඇති විය.",
        "https://lankadeepa.test/photos/ganwathura.jpg",
    ),
}

SOURCES = [
    SourceConfig(name="Daily Mirror", feed_url="https://feeds.test/mirror.xml", language="en", priority=10),
    SourceConfig(name="Ada Derana", feed_url="https://feeds.test/derana.xml", language="en", priority=20),
    SourceConfig(name="Lankadeepa", feed_url="https://feeds.test/lankadeepa.xml", language="si"),
]

IMAGES = {
    "https://mirror.test/photos/flood-roads.jpg",
    "https://derana.test/photos/flood-shelter.jpg",
    "https://lankadeepa.test/photos/ganwathura.jpg",
}


def feed_server(request: httpx.Request) -> httpx.Response:
    body = FEEDS.get(request.url.path)
    if body is None:
        return httpx.Response(404)
    return httpx.Response(200, content=body, headers={"content-type": "application/rss+xml"})


@pytest.fixture
async def http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(feed_server)) as client:
        yield client


@pytest.fixture
async def sources(session_factory) -> None:
    async with session_factory() as session:
        await SourceService(session).sync_from_config(SOURCES)


def make_pipeline(settings, session_factory, http_client, generator, embedder, runner=None) -> NewsPipeline:
    return build_pipeline(settings, session_factory, http_client, generator, runner or FakeRunner(), embedder)


async def count(session_factory, column) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(column)))).scalar_one()


@pytest.mark.usefixtures("sources")
class TestPipelineRun:
    async def test_three_sources_one_event(self, settings, session_factory, http_client, generator, embedder) -> None:
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)

        stats = await pipeline.run()

        assert not stats.skipped
        assert (stats.sources, stats.fetched_items, stats.articles_inserted) == (3, 3, 3)
        assert (stats.clustering.assigned, stats.clustering.created) == (3, 1)
        assert (stats.processing.clusters_processed, stats.processing.succeeded) == (1, 1)
        assert stats.errors == []

        async with session_factory() as session:
            cluster = (await session.execute(select(Cluster))).scalar_one()
            summary = (await session.execute(select(Summary))).scalar_one()
            operations = (await session.execute(select(AgentOperation))).scalars().all()
            run = (await session.execute(select(PipelineRun))).scalar_one()

        assert (cluster.article_count, cluster.source_count) == (3, 3)
        assert cluster.status == "published"
        assert cluster.category == "economy"
        assert cluster.slug == "floods-close-roads-in-western-province"
        assert cluster.topics[0] == "sri-lanka"
        assert cluster.image_url in IMAGES
        assert cluster.headline_si and cluster.meta_title_si

        assert summary.summary_en == SUMMARY_TEXT
        assert summary.source_lang == "en"
        assert summary.summary_si and summary.summary_ta
        assert summary.source_count_at_generation == 3
        assert summary.key_facts == ["Rivers overflowed", "Families moved to shelters"]

        assert sorted(op.agent_type for op in operations) == ["category", "image", "seo", "summary", "translation"]
        assert all(op.cluster_id == cluster.id for op in operations)
        assert all(op.operation_status == "success" and op.path == "fallback" for op in operations)

        assert run.status == "success"
        assert run.stats["articles_inserted"] == 3

    async def test_agent_summary_timeout_stores_fallback_output(
        self, settings, session_factory, http_client, generator, embedder
    ) -> None:
        agent_settings = settings.model_copy(
            update={
                "agent_enabled": True,
                "agent_rollout_percentage": 100,
                "agent_timeout_summary": 0.05,
                "agent_timeout_translation": 0.05,
                "agent_timeout_seo": 0.05,
                "agent_timeout_image": 0.05,
                "agent_timeout_category": 0.05,
            }
        )
        runner = FakeRunner(delay=1)
        pipeline = make_pipeline(agent_settings, session_factory, http_client, generator, embedder, runner)

        stats = await pipeline.run()

        assert stats.processing.succeeded == 1
        assert "summary_agent" in runner.calls
        async with session_factory() as session:
            summary = (await session.execute(select(Summary))).scalar_one()
            row = (
                await session.execute(select(AgentOperation).where(AgentOperation.agent_type == "summary"))
            ).scalar_one()
        assert summary.summary_en == SUMMARY_TEXT
        assert row.operation_status in ("timeout", "failed")
        assert row.operation_status != "success"
        assert row.path == "fallback"
        assert row.fallback_used is True

    async def test_second_run_is_a_no_op(self, settings, session_factory, http_client, generator, embedder) -> None:
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)
        await pipeline.run()
        calls = len(generator.calls)

        stats = await pipeline.run()

        assert stats.articles_inserted == 0
        assert stats.clustering.assigned == 0
        assert stats.processing.clusters_processed == 0
        assert len(generator.calls) == calls
        assert await count(session_factory, AgentOperation.id) == 5

    async def test_failed_source_does_not_stop_the_run(
        self, settings, session_factory, http_client, generator, embedder
    ) -> None:
        async with session_factory() as session:
            session.add(Source(name="Gone", feed_url="https://feeds.test/gone.xml", language="ta"))
            await session.commit()
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)

        stats = await pipeline.run()

        assert stats.articles_inserted == 3
        assert [error.stage for error in stats.errors] == ["fetch"]
        async with session_factory() as session:
            gone = (await session.execute(select(Source).where(Source.name == "Gone"))).scalar_one()
        assert "404" in gone.last_error

    async def test_failed_translation_is_retried_on_the_next_run(
        self, settings, session_factory, http_client, generator, embedder
    ) -> None:
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)
        generator.fail_tasks.add("translation")

        await pipeline.run()

        async with session_factory() as session:
            summary = (await session.execute(select(Summary))).scalar_one()
        assert summary.quality_si == 0.0
        assert summary.summary_si == summary.summary_en

        generator.fail_tasks.clear()
        second = await pipeline.run()
        third = await pipeline.run()

        assert second.processing.clusters_processed == 1
        assert third.processing.clusters_processed == 0
        async with session_factory() as session:
            summary = (await session.execute(select(Summary))).scalar_one()
            cluster = (await session.execute(select(Cluster))).scalar_one()
        assert summary.quality_si >= settings.agent_quality_threshold
        assert summary.quality_ta >= settings.agent_quality_threshold
        assert summary.summary_si != summary.summary_en
        assert cluster.headline_quality_si >= settings.agent_quality_threshold
        assert summary.version == 1

    async def test_storage_error_on_one_source_does_not_stop_the_run(
        self, settings, session_factory, http_client, generator, embedder, monkeypatch
    ) -> None:
        def row_with_null_title(result, item):
            values = article_row(result, item)
            if result.source_name == "Ada Derana":
                values["title"] = None
            return values

        monkeypatch.setattr(article_service, "article_row", row_with_null_title)
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)

        stats = await pipeline.run()

        assert stats.articles_inserted == 2
        assert [error.stage for error in stats.errors] == ["ingest"]
        assert stats.processing.succeeded == 1
        async with session_factory() as session:
            cluster = (await session.execute(select(Cluster))).scalar_one()
            run = (await session.execute(select(PipelineRun))).scalar_one()
        assert cluster.source_count == 2
        assert run.status == "success"

    async def test_held_lock_skips_the_run(self, settings, session_factory, http_client, generator, embedder) -> None:
        other = DistributedLock(session_factory)
        assert await other.try_acquire(settings.lock_name)
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)

        stats = await pipeline.run()

        assert (stats.skipped, stats.reason) == (True, "locked")
        assert await count(session_factory, Article.id) == 0
        assert await other.is_locked(settings.lock_name)

    async def test_lock_is_released_after_a_run(self, settings, session_factory, http_client, generator, embedder) -> None:
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)

        await pipeline.run()

        assert not await DistributedLock(session_factory).is_locked(settings.lock_name)

    async def test_recent_success_skips_unless_forced(
        self, settings, session_factory, http_client, generator, embedder
    ) -> None:
        throttled = settings.model_copy(update={"min_run_interval_minutes": 30})
        async with session_factory() as session:
            session.add(PipelineRun(status="success", started_at=utcnow(), finished_at=utcnow()))
            await session.commit()
        pipeline = make_pipeline(throttled, session_factory, http_client, generator, embedder)

        skipped = await pipeline.run()
        forced = await pipeline.run(force=True)

        assert (skipped.skipped, skipped.reason) == (True, "too_soon")
        assert not forced.skipped
        assert forced.articles_inserted == 3

    async def test_pipeline_error_marks_run_and_releases_lock(
        self, settings, session_factory, http_client, generator, embedder
    ) -> None:
        pipeline = make_pipeline(settings, session_factory, http_client, generator, embedder)

        async def broken() -> None:
            raise RuntimeError("clustering store unavailable")

        pipeline.clustering.cluster_pending = broken

        with pytest.raises(RuntimeError):
            await pipeline.run()

        async with session_factory() as session:
            run = (await session.execute(select(PipelineRun))).scalar_one()
        assert run.status == "error"
        assert "clustering store unavailable" in run.notes
        assert not await DistributedLock(session_factory).is_locked(settings.lock_name)


@pytest.mark.usefixtures("sources")
class TestClusterWorker:
    async def test_fresh_cluster_is_skipped(self, settings, session_factory, http_client, generator, embedder) -> None:
        await make_pipeline(settings, session_factory, http_client, generator, embedder).run()
        async with session_factory() as session:
            cluster_id = (await session.execute(select(Cluster.id))).scalar_one()

        repository = ClusterRepository(session_factory)
        worker = ClusterWorker(build_orchestrator(settings, session_factory, generator, FakeRunner()), repository)
        calls = len(generator.calls)

        result = await worker.process(cluster_id)

        assert sorted(result.skipped) == ["category", "image", "seo", "summary", "translation"]
        assert result.attempted == []
        assert not result.has_results
        assert len(generator.calls) == calls

    async def test_new_source_regenerates_summary(
        self, settings, session_factory, http_client, generator, embedder
    ) -> None:
        await make_pipeline(settings, session_factory, http_client, generator, embedder).run()
        async with session_factory() as session:
            summary = (await session.execute(select(Summary))).scalar_one()
            summary.source_count_at_generation = 2
            await session.commit()
            cluster_id = summary.cluster_id

        repository = ClusterRepository(session_factory)
        worker = ClusterWorker(build_orchestrator(settings, session_factory, generator, FakeRunner()), repository)

        result = await worker.process(cluster_id)
        await repository.save(result)

        assert result.attempted == ["summary", "translation", "seo"]
        async with session_factory() as session:
            summary = (await session.execute(select(Summary))).scalar_one()
        assert summary.version == 2
        assert summary.source_count_at_generation == 3

    async def test_missing_cluster(self, settings, session_factory, generator) -> None:
        orchestrator = build_orchestrator(settings, session_factory, generator, FakeRunner())
        worker = ClusterWorker(orchestrator, ClusterRepository(session_factory))

        with pytest.raises(LookupError):
            await worker.process(uuid4())

    async def test_clusters_needing_enrichment(self, session_factory) -> None:
        repository = ClusterRepository(session_factory)
        async with session_factory() as session:
            stale = Cluster(headline="old", last_seen_at=utcnow() - timedelta(days=3))
            draft = Cluster(headline="new")
            session.add_all([stale, draft])
            await session.commit()

        assert await repository.clusters_needing_enrichment(timedelta(hours=24)) == [draft.id]


class TestDominantLanguage:
    def test_majority_and_ties(self) -> None:
        def articles(*languages: str) -> list[ArticleSnippet]:
            return [ArticleSnippet(title="t", language=language) for language in languages]

        assert dominant_language(articles("si", "si", "en")) == "si"
        assert dominant_language(articles("ta", "en")) == "en"
        assert dominant_language(articles("unk"), fallback="ta") == "ta"
        assert dominant_language([]) == "en"

