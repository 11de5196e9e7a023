"""Enumerations and closed vocabularies used by models and agents."""

from enum import Enum


class Language(str, Enum):
    """Content languages. UNKNOWN covers sources we cannot tag."""

    EN = "en"
    SI = "si"
    TA = "ta"
    UNKNOWN = "unk"


SUPPORTED_LANGUAGES: tuple[str, ...] = (Language.EN.value, Language.SI.value, Language.TA.value)


class ClusterStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class RunStatus(str, Enum):
    STARTED = "started"
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


class Capability(str, Enum):
    """The five enrichment capabilities."""

    SUMMARY = "summary"
    TRANSLATION = "translation"
    SEO = "seo"
    IMAGE = "image"
    CATEGORY = "category"


class Complexity(str, Enum):
    SIMPLE = "simple"
    COMPLEX = "complex"


class OperationPath(str, Enum):
    AGENT = "agent"
    FALLBACK = "fallback"


class OperationStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


# Category vocabulary; agents must default to politics when unsure
CATEGORIES: tuple[str, ...] = (
    "politics",
    "economy",
    "sports",
    "technology",
    "health",
    "education",
)
DEFAULT_CATEGORY = "politics"

GEOGRAPHIC_TOPICS: tuple[str, ...] = ("sri-lanka", "world")
