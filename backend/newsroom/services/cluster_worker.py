"""Runs the five enrichment capabilities over one cluster."""

import logging
import time
from collections import Counter
from collections.abc import Awaitable, Callable
from typing import TypeVar
from uuid import UUID

from newsroom.agents.orchestrator import Orchestrator
from newsroom.constants import SUPPORTED_LANGUAGES, Capability, Language
from newsroom.schemas.enrichment import (
    ArticleSnippet,
    CategoryInput,
    ImageInput,
    LocalizedText,
    OperationContext,
    SEOInput,
    SummaryInput,
    TranslationInput,
)
from newsroom.schemas.pipeline import ClusterEnrichment, StageError
from newsroom.services.cluster_repository import ClusterRepository, ClusterSnapshot

logger = logging.getLogger(__name__)

T = TypeVar("T")


def dominant_language(articles: list[ArticleSnippet], fallback: str = Language.EN.value) -> str:
    """Most common supported language among the articles; English wins ties."""
    counts = Counter(a.language for a in articles if a.language in SUPPORTED_LANGUAGES)
    if not counts:
        return fallback if fallback in SUPPORTED_LANGUAGES else Language.EN.value
    top = max(counts.values())
    for language in SUPPORTED_LANGUAGES:
        if counts.get(language) == top:
            return language
    return Language.EN.value


class ClusterWorker:
    """
    Enriches one cluster: summary, translation, seo, image, category.

    Each step is skipped when the stored data is already good enough,
    so running a fresh cluster again is a no-op. A failing step is
    recorded and the remaining steps still run.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        repository: ClusterRepository,
        quality_threshold: float = 0.7,
    ):
        self.orchestrator = orchestrator
        self.repository = repository
        self.quality_threshold = quality_threshold

    async def __call__(self, cluster_id: UUID) -> ClusterEnrichment:
        return await self.process(cluster_id)

    async def process(self, cluster_id: UUID) -> ClusterEnrichment:
        started = time.perf_counter()
        snapshot = await self.repository.load(cluster_id)
        if snapshot is None:
            raise LookupError(f"Cluster {cluster_id} does not exist")
        if not snapshot.articles:
            raise LookupError(f"Cluster {cluster_id} has no articles")

        result = ClusterEnrichment(cluster_id=cluster_id)
        await self._enrich(snapshot, result)
        result.duration_ms = int((time.perf_counter() - started) * 1000)
        return result

    async def _enrich(self, snapshot: ClusterSnapshot, result: ClusterEnrichment) -> None:
        cluster, row, articles = snapshot.cluster, snapshot.summary, snapshot.articles
        context = OperationContext(cluster_id=cluster.id, summary_id=row.id if row else None)
        threshold = self.quality_threshold

        # Summary
        summary_lang = dominant_language(articles, cluster.language)
        previous = row.text_for(row.source_lang) if row else None
        previous_quality = (row.quality_for(row.source_lang) or 0.0) if row else 0.0
        summary_text = previous
        summary_changed = False
        if row is not None and previous and previous_quality >= threshold and (
            row.source_count_at_generation >= cluster.source_count
        ):
            summary_lang = row.source_lang
            result.skipped.append(Capability.SUMMARY.value)
        else:
            summary = await self._stage(
                result,
                Capability.SUMMARY,
                lambda: self.orchestrator.orchestrate_summary(
                    SummaryInput(articles=articles, source_lang=summary_lang, previous_summary=previous), context
                ),
            )
            if summary is not None:
                result.summary = summary
                summary_text = summary.summary
                summary_lang = summary.source_lang
                summary_changed = True
            elif row is not None:
                summary_lang = row.source_lang

        headline = self._headline_in(snapshot, summary_lang)

        # Translation
        localized: dict[str, LocalizedText] = {}
        if summary_text:
            existing = {} if summary_changed else self._existing_translations(snapshot)
            complete = all(
                language in existing and existing[language].quality >= threshold
                for language in SUPPORTED_LANGUAGES
                if language != summary_lang
            )
            if complete:
                localized = existing
                result.skipped.append(Capability.TRANSLATION.value)
            else:
                translations = await self._stage(
                    result,
                    Capability.TRANSLATION,
                    lambda: self.orchestrator.orchestrate_translation(
                        TranslationInput(
                            headline=headline,
                            summary=summary_text,
                            source_lang=summary_lang,
                            target_langs=list(SUPPORTED_LANGUAGES),
                            existing=existing,
                        ),
                        context,
                    ),
                )
                if translations is not None:
                    result.translations = translations
                    localized = translations.translations
        else:
            result.skipped.append(Capability.TRANSLATION.value)

        english = localized.get(Language.EN.value)
        en_headline = english.headline if english else headline
        en_summary = english.summary if english else (summary_text or "")

        # SEO
        if summary_text and (summary_changed or not cluster.meta_title_en):
            seo = await self._stage(
                result,
                Capability.SEO,
                lambda: self.orchestrator.orchestrate_seo(
                    SEOInput(headline=en_headline, summary=en_summary, articles=articles, localized=localized),
                    context,
                ),
            )
            result.seo = seo
        else:
            result.skipped.append(Capability.SEO.value)

        # Image
        if cluster.image_url:
            result.skipped.append(Capability.IMAGE.value)
        else:
            result.image = await self._stage(
                result,
                Capability.IMAGE,
                lambda: self.orchestrator.orchestrate_image(
                    ImageInput(headline=en_headline, summary=en_summary, articles=articles), context
                ),
            )

        # Category
        if cluster.category:
            result.skipped.append(Capability.CATEGORY.value)
        else:
            result.category = await self._stage(
                result,
                Capability.CATEGORY,
                lambda: self.orchestrator.orchestrate_category(
                    CategoryInput(headline=en_headline, summary=en_summary, articles=articles), context
                ),
            )

    async def _stage(
        self, result: ClusterEnrichment, capability: Capability, call: Callable[[], Awaitable[T]]
    ) -> T | None:
        result.attempted.append(capability.value)
        try:
            value = await call()
        except Exception as e:
            logger.error("Cluster %s %s failed: %s: %s", result.cluster_id, capability.value, type(e).__name__, e)
            result.errors.append(
                StageError(cluster_id=result.cluster_id, stage=capability.value, message=f"{type(e).__name__}: {e}")
            )
            return None
        result.succeeded.append(capability.value)
        return value

    @staticmethod
    def _headline_in(snapshot: ClusterSnapshot, language: str) -> str:
        cluster = snapshot.cluster
        stored = cluster.headline_for(language)
        if stored:
            return stored
        if cluster.language == language:
            return cluster.headline
        for article in snapshot.articles:
            if article.language == language:
                return article.title
        return cluster.headline

    @staticmethod
    def _existing_translations(snapshot: ClusterSnapshot) -> dict[str, LocalizedText]:
        cluster, row = snapshot.cluster, snapshot.summary
        existing: dict[str, LocalizedText] = {}
        if row is None:
            return existing
        for language in SUPPORTED_LANGUAGES:
            headline = cluster.headline_for(language)
            summary = row.text_for(language)
            if headline and summary:
                existing[language] = LocalizedText(
                    headline=headline,
                    summary=summary,
                    headline_quality=cluster.headline_quality_for(language) or 0.0,
                    summary_quality=row.quality_for(language) or 0.0,
                )
        return existing
