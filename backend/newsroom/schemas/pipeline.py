"""Run-level statistics and error records."""

from uuid import UUID

from pydantic import BaseModel, Field

from newsroom.schemas.enrichment import (
    CategoryResult,
    ImageResult,
    SEOResult,
    SummaryResult,
    TranslationResult,
)


class StageError(BaseModel):
    """A failure attached to run statistics instead of being raised."""

    cluster_id: UUID | None = None
    source_id: UUID | None = None
    stage: str
    message: str


class CapabilityStats(BaseModel):
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0


class ProcessingStats(BaseModel):
    """Aggregate result of the parallel cluster processor."""

    clusters_processed: int = 0
    succeeded: int = 0
    failed: int = 0
    persisted: int = 0
    capabilities: dict[str, CapabilityStats] = Field(default_factory=dict)
    total_duration_ms: int = 0
    errors: list[StageError] = Field(default_factory=list)


class ClusteringReport(BaseModel):
    assigned: int = 0
    created: int = 0
    failed: int = 0
    cluster_ids: list[UUID] = Field(default_factory=list)
    errors: list[StageError] = Field(default_factory=list)


class IngestReport(BaseModel):
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: list[StageError] = Field(default_factory=list)


class PipelineStats(BaseModel):
    """What one call of the pipeline entry point did."""

    run_id: UUID | None = None
    skipped: bool = False
    reason: str | None = None
    sources: int = 0
    fetched_items: int = 0
    articles_inserted: int = 0
    clustering: ClusteringReport = Field(default_factory=ClusteringReport)
    processing: ProcessingStats = Field(default_factory=ProcessingStats)
    errors: list[StageError] = Field(default_factory=list)
    duration_ms: int = 0


class ClusterEnrichment(BaseModel):
    """Everything produced for one cluster in one processing pass."""

    cluster_id: UUID
    summary: SummaryResult | None = None
    translations: TranslationResult | None = None
    seo: SEOResult | None = None
    image: ImageResult | None = None
    category: CategoryResult | None = None
    attempted: list[str] = Field(default_factory=list)
    succeeded: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    errors: list[StageError] = Field(default_factory=list)
    duration_ms: int = 0

    @property
    def has_results(self) -> bool:
        return any([self.summary, self.translations, self.seo, self.image, self.category])
