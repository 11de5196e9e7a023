"""Inputs and results of the five enrichment capabilities."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from newsroom.constants import CATEGORIES, DEFAULT_CATEGORY


class ArticleSnippet(BaseModel):
    """The part of an article that capabilities read."""

    title: str
    content: str = ""
    url: str | None = None
    source_name: str | None = None
    language: str = "unk"
    published_at: datetime | None = None
    image_url: str | None = None
    image_urls: list[str] = Field(default_factory=list)
    weight: float = 1.0


# Summary


class SummaryInput(BaseModel):
    articles: list[ArticleSnippet]
    source_lang: str = "en"
    previous_summary: str | None = None


class SummaryResult(BaseModel):
    summary: str = Field(..., min_length=1)
    source_lang: str = "en"
    quality_score: float = Field(default=0, ge=0, le=1)
    word_count: int = 0
    attempts: int = 1
    issues: list[str] = Field(default_factory=list)


# Translation


class LocalizedText(BaseModel):
    headline: str
    summary: str
    headline_quality: float = Field(default=0, ge=0, le=1)
    summary_quality: float = Field(default=0, ge=0, le=1)

    @property
    def quality(self) -> float:
        return min(self.headline_quality, self.summary_quality)


class TranslationInput(BaseModel):
    headline: str
    summary: str
    source_lang: str = "en"
    target_langs: list[str]
    existing: dict[str, LocalizedText] = Field(default_factory=dict)


class TranslationResult(BaseModel):
    translations: dict[str, LocalizedText]

    @property
    def average_quality(self) -> float:
        if not self.translations:
            return 0.0
        scores = [t.quality for t in self.translations.values()]
        return round(sum(scores) / len(scores), 3)


# SEO


class SEOText(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)

    @field_validator("title")
    @classmethod
    def _clip_title(cls, value: str) -> str:
        return value.strip()[:65]

    @field_validator("description")
    @classmethod
    def _clip_description(cls, value: str) -> str:
        return value.strip()[:160]


class SEOInput(BaseModel):
    headline: str
    summary: str
    articles: list[ArticleSnippet] = Field(default_factory=list)
    localized: dict[str, LocalizedText] = Field(default_factory=dict)


class SEOResult(BaseModel):
    seo: dict[str, SEOText]
    slug: str
    topics: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    key_facts: list[str] = Field(default_factory=list)
    district: str | None = None
    primary_entity: str | None = None
    event_type: str | None = None


# Image


class ImageInput(BaseModel):
    headline: str
    summary: str = ""
    articles: list[ArticleSnippet] = Field(default_factory=list)
    existing_image_url: str | None = None


class ImageResult(BaseModel):
    image_url: str | None = None
    relevance_score: float = Field(default=0, ge=0, le=1)
    quality_score: float = Field(default=0, ge=0, le=1)
    source: str = "none"  # existing, article, page, none
    candidates_considered: int = 0


# Category


class CategoryInput(BaseModel):
    headline: str
    summary: str = ""
    articles: list[ArticleSnippet] = Field(default_factory=list)


class CategoryResult(BaseModel):
    category: str = DEFAULT_CATEGORY
    confidence: float = Field(default=0.5, ge=0, le=1)

    @field_validator("category")
    @classmethod
    def _known_category(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in CATEGORIES:
            raise ValueError(f"unknown category {value!r}")
        return value


class OperationContext(BaseModel):
    """Identifies what an orchestrator call is working on."""

    cluster_id: UUID | None = None
    summary_id: UUID | None = None
