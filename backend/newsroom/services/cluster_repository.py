"""Cluster repository - loads enrichment inputs and persists enrichment results."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from newsroom.constants import SUPPORTED_LANGUAGES, ClusterStatus
from newsroom.models import Article, Cluster, Source, Summary
from newsroom.schemas.enrichment import ArticleSnippet
from newsroom.schemas.pipeline import ClusterEnrichment
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)

PROMPT_VERSION = "v2"


@dataclass
class ClusterSnapshot:
    """Detached view of a cluster with its summary row and member articles."""

    cluster: Cluster
    summary: Summary | None
    articles: list[ArticleSnippet]


class ClusterRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], summary_model: str | None = None):
        self.session_factory = session_factory
        self.summary_model = summary_model

    async def load(self, cluster_id: UUID) -> ClusterSnapshot | None:
        async with self.session_factory() as session:
            cluster = await session.get(Cluster, cluster_id)
            if cluster is None:
                return None
            summary = (
                await session.execute(select(Summary).where(Summary.cluster_id == cluster_id))
            ).scalar_one_or_none()
            rows = await session.execute(
                select(Article, Source.name)
                .join(Source, Source.id == Article.source_id)
                .where(Article.cluster_id == cluster_id)
                .order_by(Article.published_at, Article.fetched_at)
            )
            articles = [
                ArticleSnippet(
                    title=article.title,
                    content=article.content_text or article.excerpt or "",
                    url=article.url,
                    source_name=source_name,
                    language=article.language,
                    published_at=article.published_at,
                    image_url=article.image_url,
                    image_urls=article.image_urls or [],
                )
                for article, source_name in rows.all()
            ]
        return ClusterSnapshot(cluster=cluster, summary=summary, articles=articles)

    async def clusters_needing_enrichment(
        self, window: timedelta, limit: int = 50, quality_threshold: float = 0.7
    ) -> list[UUID]:
        """
        Recent clusters the worker still has something to do for.

        That is drafts, clusters missing an enrichment field, and clusters
        whose summary or headline in any language is missing or scored
        below `quality_threshold`.
        """
        below_bar = []
        for language in SUPPORTED_LANGUAGES:
            for column in (getattr(Summary, f"quality_{language}"), getattr(Cluster, f"headline_quality_{language}")):
                below_bar.extend([column == None, column < quality_threshold])  # noqa: E711

        async with self.session_factory() as session:
            result = await session.execute(
                select(Cluster.id)
                .outerjoin(Summary, Summary.cluster_id == Cluster.id)
                .where(
                    Cluster.status != ClusterStatus.ARCHIVED.value,
                    Cluster.last_seen_at >= utcnow() - window,
                    or_(
                        Cluster.status == ClusterStatus.DRAFT.value,
                        Cluster.category == None,  # noqa: E711
                        Cluster.image_url == None,  # noqa: E711
                        Cluster.meta_title_en == None,  # noqa: E711
                        Summary.id == None,  # noqa: E711
                        *below_bar,
                    ),
                )
                .order_by(Cluster.last_seen_at.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def save(self, enrichment: ClusterEnrichment) -> None:
        """Write one cluster's results; last write wins per column."""
        async with self.session_factory() as session:
            cluster = await session.get(Cluster, enrichment.cluster_id)
            if cluster is None:
                raise LookupError(f"Cluster {enrichment.cluster_id} no longer exists")
            summary = (
                await session.execute(select(Summary).where(Summary.cluster_id == cluster.id))
            ).scalar_one_or_none()
            now = utcnow()

            if enrichment.summary is not None:
                result = enrichment.summary
                if summary is None:
                    summary = Summary(cluster_id=cluster.id)
                    session.add(summary)
                else:
                    summary.version += 1
                # A new source text makes older translations stale
                for language in SUPPORTED_LANGUAGES:
                    setattr(summary, f"summary_{language}", None)
                    setattr(summary, f"quality_{language}", None)
                setattr(summary, f"summary_{result.source_lang}", result.summary)
                setattr(summary, f"quality_{result.source_lang}", result.quality_score)
                summary.source_lang = result.source_lang
                summary.model = self.summary_model
                summary.prompt_version = PROMPT_VERSION
                summary.source_count_at_generation = cluster.source_count
                summary.updated_at = now

            if enrichment.translations is not None:
                for language, text in enrichment.translations.translations.items():
                    setattr(cluster, f"headline_{language}", text.headline)
                    setattr(cluster, f"headline_quality_{language}", text.headline_quality)
                    # The source-language text keeps its own summary score
                    if summary is not None and language != summary.source_lang:
                        setattr(summary, f"summary_{language}", text.summary)
                        setattr(summary, f"quality_{language}", text.summary_quality)
                        summary.updated_at = now

            if enrichment.seo is not None:
                seo = enrichment.seo
                for language, meta in seo.seo.items():
                    setattr(cluster, f"meta_title_{language}", meta.title)
                    setattr(cluster, f"meta_description_{language}", meta.description)
                cluster.slug = await self._unique_slug(session, cluster.id, seo.slug)
                cluster.topics = seo.topics
                cluster.keywords = seo.keywords
                cluster.district = seo.district
                cluster.primary_entity = seo.primary_entity
                cluster.event_type = seo.event_type
                if summary is not None:
                    summary.key_facts = seo.key_facts

            if enrichment.image is not None and enrichment.image.image_url:
                cluster.image_url = enrichment.image.image_url
                cluster.image_relevance_score = enrichment.image.relevance_score
                cluster.image_quality_score = enrichment.image.quality_score

            if enrichment.category is not None:
                cluster.category = enrichment.category.category

            has_text = summary is not None and any(summary.text_for(lang) for lang in SUPPORTED_LANGUAGES)
            if has_text and cluster.status == ClusterStatus.DRAFT.value:
                cluster.status = ClusterStatus.PUBLISHED.value
                cluster.published_at = now
            cluster.updated_at = now

            await session.commit()
        logger.debug("Saved enrichment for cluster %s", enrichment.cluster_id)

    async def _unique_slug(self, session: AsyncSession, cluster_id: UUID, slug: str) -> str:
        taken = (
            await session.execute(select(Cluster.id).where(Cluster.slug == slug, Cluster.id != cluster_id))
        ).first()
        if taken is None:
            return slug
        return f"{slug[:180]}-{cluster_id.hex[:8]}"
