"""Closed vocabularies shared across the pipeline."""

from newsroom.constants.vocabulary import (
    CATEGORIES,
    DEFAULT_CATEGORY,
    GEOGRAPHIC_TOPICS,
    SUPPORTED_LANGUAGES,
    Capability,
    ClusterStatus,
    Complexity,
    Language,
    OperationPath,
    OperationStatus,
    RunStatus,
)

__all__ = [
    "CATEGORIES",
    "DEFAULT_CATEGORY",
    "GEOGRAPHIC_TOPICS",
    "SUPPORTED_LANGUAGES",
    "Capability",
    "ClusterStatus",
    "Complexity",
    "Language",
    "OperationPath",
    "OperationStatus",
    "RunStatus",
]
