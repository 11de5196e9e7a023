"""Clustering engine - groups articles about the same event."""

import asyncio
import logging
from datetime import timedelta
from uuid import UUID

import numpy as np
from sqlalchemy import distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlmodel import select

from newsroom.constants import ClusterStatus, Language
from newsroom.models import Article, Cluster
from newsroom.schemas.pipeline import ClusteringReport, StageError
from newsroom.services.embeddings import Embedder, cosine_similarity, normalize
from newsroom.utils.time import utcnow

logger = logging.getLogger(__name__)


def article_text(article: Article) -> str:
    """Text that represents an article for embedding; the title counts twice."""
    return " ".join(filter(None, [article.title, article.title, article.excerpt]))


class ClusteringEngine:
    """
    Assigns articles to the most similar recent cluster or starts a new one.

    Similarity is cosine between the article embedding and each cluster
    centroid. Only clusters seen within `window_hours` are candidates.
    Clusters are never merged or split after creation.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedder: Embedder,
        similarity_threshold: float = 0.65,
        window_hours: int = 24,
        expiry_days: int = 30,
        embed_concurrency: int = 5,
    ):
        self.session_factory = session_factory
        self.embedder = embedder
        self.similarity_threshold = similarity_threshold
        self.window = timedelta(hours=window_hours)
        self.expiry = timedelta(days=expiry_days)
        self.embed_concurrency = embed_concurrency

    async def assign(self, article: Article) -> UUID:
        """Embed `article` and attach it to a cluster, returning the cluster id."""
        vector = await self.embedder.embed(article_text(article))
        async with self.session_factory() as session:
            stored = await session.get(Article, article.id)
            if stored is None:
                raise LookupError(f"Article {article.id} does not exist")
            cluster_id, _ = await self._assign_embedded(session, stored, vector)
            await session.commit()
        return cluster_id

    async def cluster_pending(self) -> ClusteringReport:
        """
        Cluster every recent article without a cluster.

        Embeddings are computed concurrently; assignment is sequential so
        articles of the same event arriving together join one cluster.
        Articles whose embedding or database write fails stay unclustered
        for the next run.
        """
        report = ClusteringReport()
        async with self.session_factory() as session:
            result = await session.execute(
                select(Article)
                .where(Article.cluster_id == None, Article.fetched_at >= utcnow() - self.window)  # noqa: E711
                .order_by(Article.published_at, Article.fetched_at)
            )
            pending = list(result.scalars().all())

        if not pending:
            return report

        semaphore = asyncio.Semaphore(self.embed_concurrency)

        async def embed(article: Article) -> np.ndarray | None:
            async with semaphore:
                try:
                    return await self.embedder.embed(article_text(article))
                except Exception as e:
                    logger.warning("Embedding failed for article %s: %s: %s", article.id, type(e).__name__, e)
                    return None

        vectors = await asyncio.gather(*(embed(article) for article in pending))

        touched: dict[UUID, None] = {}
        for article, vector in zip(pending, vectors):
            if vector is None:
                report.failed += 1
                continue
            try:
                async with self.session_factory() as session:
                    stored = await session.get(Article, article.id)
                    if stored is None or stored.cluster_id is not None:
                        continue
                    cluster_id, created = await self._assign_embedded(session, stored, vector)
                    await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to cluster article %s: %s", article.id, e)
                report.failed += 1
                report.errors.append(
                    StageError(source_id=article.source_id, stage="cluster", message=f"{type(e).__name__}: {e}"[:500])
                )
                continue
            touched[cluster_id] = None
            report.assigned += 1
            if created:
                report.created += 1

        report.cluster_ids = list(touched)
        logger.info(
            "Clustered %d articles (%d new clusters, %d failed)",
            report.assigned,
            report.created,
            report.failed,
        )
        return report

    async def _assign_embedded(
        self, session: AsyncSession, article: Article, vector: np.ndarray
    ) -> tuple[UUID, bool]:
        match, similarity = await self._nearest_cluster(session, vector)
        now = utcnow()

        if match is not None and similarity >= self.similarity_threshold:
            count = max(match.article_count, 1)
            centroid = np.asarray(match.centroid, dtype=np.float64)
            match.centroid = normalize((centroid * count + vector) / (count + 1)).tolist()
            match.last_seen_at = now
            match.expires_at = now + self.expiry
            match.updated_at = now
            cluster = match
            created = False
            logger.debug("Article %s joined cluster %s (similarity %.3f)", article.id, cluster.id, similarity)
        else:
            cluster = Cluster(
                headline=article.title,
                language=article.language if article.language != Language.UNKNOWN.value else Language.EN.value,
                status=ClusterStatus.DRAFT.value,
                centroid=vector.tolist(),
                first_seen_at=now,
                last_seen_at=now,
                expires_at=now + self.expiry,
            )
            session.add(cluster)
            await session.flush()
            created = True
            logger.debug("Article %s started cluster %s", article.id, cluster.id)

        article.cluster_id = cluster.id
        await session.flush()
        await self._refresh_counts(session, cluster)
        return cluster.id, created

    async def _nearest_cluster(self, session: AsyncSession, vector: np.ndarray) -> tuple[Cluster | None, float]:
        result = await session.execute(
            select(Cluster).where(
                Cluster.status != ClusterStatus.ARCHIVED.value,
                Cluster.last_seen_at >= utcnow() - self.window,
                Cluster.centroid != None,  # noqa: E711
            )
        )
        best: Cluster | None = None
        best_similarity = -1.0
        for cluster in result.scalars().all():
            centroid = np.asarray(cluster.centroid, dtype=np.float64)
            if centroid.shape != vector.shape:
                continue
            similarity = cosine_similarity(centroid, vector)
            if similarity > best_similarity:
                best, best_similarity = cluster, similarity
        return best, best_similarity

    async def _refresh_counts(self, session: AsyncSession, cluster: Cluster) -> None:
        """Recompute membership counters from the articles table."""
        result = await session.execute(
            select(func.count(Article.id), func.count(distinct(Article.source_id))).where(
                Article.cluster_id == cluster.id
            )
        )
        article_count, source_count = result.one()
        cluster.article_count = article_count
        cluster.source_count = source_count
