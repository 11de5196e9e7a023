"""Parallel cluster processor - bounded-concurrency enrichment batches."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from uuid import UUID

from newsroom.constants import Capability
from newsroom.schemas.pipeline import CapabilityStats, ClusterEnrichment, ProcessingStats, StageError

logger = logging.getLogger(__name__)

WorkerFn = Callable[[UUID], Awaitable[ClusterEnrichment]]
PersistFn = Callable[[ClusterEnrichment], Awaitable[None]]


class ParallelClusterProcessor:
    """
    Processes clusters in batches of `max_concurrency`.

    Clusters in a batch run concurrently and settle independently; one
    cluster's exception never reaches another cluster's result. Results
    are persisted after their batch completes.
    """

    def __init__(self, worker: WorkerFn, persist: PersistFn, max_concurrency: int = 5):
        self.worker = worker
        self.persist = persist
        self.max_concurrency = max_concurrency

    async def process_many(self, cluster_ids: Sequence[UUID], max_concurrency: int | None = None) -> ProcessingStats:
        batch_size = max(1, max_concurrency or self.max_concurrency)
        started = time.perf_counter()
        stats = ProcessingStats(capabilities={c.value: CapabilityStats() for c in Capability})
        ids = list(dict.fromkeys(cluster_ids))

        for offset in range(0, len(ids), batch_size):
            batch = ids[offset : offset + batch_size]
            logger.info("Processing batch %d (%d clusters)", offset // batch_size + 1, len(batch))
            outcomes = await asyncio.gather(*(self.worker(cluster_id) for cluster_id in batch), return_exceptions=True)
            for cluster_id, outcome in zip(batch, outcomes):
                await self._settle(stats, cluster_id, outcome)

        stats.total_duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            "Processed %d clusters: %d succeeded, %d failed, %d persisted in %dms",
            stats.clusters_processed,
            stats.succeeded,
            stats.failed,
            stats.persisted,
            stats.total_duration_ms,
        )
        return stats

    async def _settle(
        self, stats: ProcessingStats, cluster_id: UUID, outcome: ClusterEnrichment | BaseException
    ) -> None:
        stats.clusters_processed += 1
        if isinstance(outcome, BaseException):
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error("Cluster %s failed: %s: %s", cluster_id, type(outcome).__name__, outcome)
            stats.failed += 1
            stats.errors.append(
                StageError(cluster_id=cluster_id, stage="process", message=f"{type(outcome).__name__}: {outcome}")
            )
            return

        for name in outcome.attempted:
            stats.capabilities[name].attempted += 1
        for name in outcome.succeeded:
            stats.capabilities[name].succeeded += 1
        for name in outcome.skipped:
            stats.capabilities[name].skipped += 1
        for error in outcome.errors:
            stats.capabilities[error.stage].failed += 1
        stats.errors.extend(outcome.errors)

        if outcome.has_results:
            try:
                await self.persist(outcome)
                stats.persisted += 1
            except Exception as e:
                logger.error("Failed to persist cluster %s: %s: %s", cluster_id, type(e).__name__, e)
                stats.failed += 1
                stats.errors.append(
                    StageError(cluster_id=cluster_id, stage="persist", message=f"{type(e).__name__}: {e}")
                )
                return

        if outcome.errors:
            stats.failed += 1
        else:
            stats.succeeded += 1
