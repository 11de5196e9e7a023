"""Newsroom - multi-language news ingestion, clustering and AI enrichment."""

__version__ = "0.1.0"
