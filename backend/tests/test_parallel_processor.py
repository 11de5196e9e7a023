"""Tests for bounded-concurrency cluster processing."""

import asyncio
from uuid import UUID, uuid4

from newsroom.schemas.enrichment import CategoryResult
from newsroom.schemas.pipeline import ClusterEnrichment, StageError
from newsroom.services.parallel_processor import ParallelClusterProcessor


def enriched(cluster_id: UUID) -> ClusterEnrichment:
    return ClusterEnrichment(
        cluster_id=cluster_id,
        category=CategoryResult(category="health"),
        attempted=["category"],
        succeeded=["category"],
        skipped=["summary"],
    )


class TestParallelClusterProcessor:
    async def test_in_flight_never_exceeds_limit(self) -> None:
        in_flight = 0
        peak = 0

        async def worker(cluster_id: UUID) -> ClusterEnrichment:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return enriched(cluster_id)

        persisted: list[UUID] = []

        async def persist(result: ClusterEnrichment) -> None:
            persisted.append(result.cluster_id)

        ids = [uuid4() for _ in range(7)]
        stats = await ParallelClusterProcessor(worker, persist, max_concurrency=3).process_many(ids)

        assert peak == 3
        assert stats.clusters_processed == 7
        assert stats.succeeded == 7
        assert stats.persisted == 7
        assert sorted(persisted) == sorted(ids)

    async def test_call_level_limit_overrides_default(self) -> None:
        in_flight = 0
        peak = 0

        async def worker(cluster_id: UUID) -> ClusterEnrichment:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.005)
            in_flight -= 1
            return enriched(cluster_id)

        async def persist(result: ClusterEnrichment) -> None:
            return None

        processor = ParallelClusterProcessor(worker, persist, max_concurrency=5)
        await processor.process_many([uuid4() for _ in range(4)], max_concurrency=1)

        assert peak == 1

    async def test_one_failure_is_isolated(self) -> None:
        ids = [uuid4() for _ in range(5)]
        bad = ids[2]

        async def worker(cluster_id: UUID) -> ClusterEnrichment:
            await asyncio.sleep(0)
            if cluster_id == bad:
                raise RuntimeError("model exploded")
            return enriched(cluster_id)

        persisted: list[UUID] = []

        async def persist(result: ClusterEnrichment) -> None:
            persisted.append(result.cluster_id)

        stats = await ParallelClusterProcessor(worker, persist, max_concurrency=5).process_many(ids)

        assert stats.failed == 1
        assert stats.succeeded == 4
        assert bad not in persisted
        assert len(persisted) == 4
        assert [error.cluster_id for error in stats.errors] == [bad]
        assert "model exploded" in stats.errors[0].message

    async def test_persist_error_is_recorded_not_raised(self) -> None:
        ids = [uuid4(), uuid4()]

        async def worker(cluster_id: UUID) -> ClusterEnrichment:
            return enriched(cluster_id)

        async def persist(result: ClusterEnrichment) -> None:
            if result.cluster_id == ids[0]:
                raise ConnectionError("database went away")

        stats = await ParallelClusterProcessor(worker, persist).process_many(ids)

        assert (stats.failed, stats.succeeded, stats.persisted) == (1, 1, 1)
        assert stats.errors[0].stage == "persist"

    async def test_capability_statistics(self) -> None:
        cluster_id = uuid4()

        async def worker(cid: UUID) -> ClusterEnrichment:
            result = enriched(cid)
            result.attempted.append("image")
            result.errors.append(StageError(cluster_id=cid, stage="image", message="no candidates"))
            return result

        async def persist(result: ClusterEnrichment) -> None:
            return None

        stats = await ParallelClusterProcessor(worker, persist).process_many([cluster_id, cluster_id])

        assert stats.clusters_processed == 1
        assert stats.capabilities["category"].succeeded == 1
        assert stats.capabilities["summary"].skipped == 1
        assert stats.capabilities["image"].attempted == 1
        assert stats.capabilities["image"].failed == 1
        assert stats.failed == 1
        assert stats.persisted == 1

    async def test_empty_input(self) -> None:
        async def worker(cluster_id: UUID) -> ClusterEnrichment:
            raise AssertionError("not called")

        async def persist(result: ClusterEnrichment) -> None:
            raise AssertionError("not called")

        stats = await ParallelClusterProcessor(worker, persist).process_many([])

        assert stats.clusters_processed == 0
