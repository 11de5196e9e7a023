"""Models package - SQLModel database models."""

from newsroom.models.agent_operation import AgentOperation
from newsroom.models.article import Article
from newsroom.models.cluster import Cluster
from newsroom.models.pipeline import PipelineLock, PipelineRun
from newsroom.models.source import Source
from newsroom.models.summary import Summary

__all__ = [
    "AgentOperation",
    "Article",
    "Cluster",
    "PipelineLock",
    "PipelineRun",
    "Source",
    "Summary",
]
