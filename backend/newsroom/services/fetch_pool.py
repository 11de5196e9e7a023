"""Per-language worker pools that fetch every enabled source concurrently."""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable

import httpx

from newsroom.config import Settings
from newsroom.schemas.feed import FeedItem, FetchReport, FetchResult, FetchStats, LanguageStats
from newsroom.schemas.source import SourceRef
from newsroom.services.rss import fetch_feed
from newsroom.utils.retry import with_retry

logger = logging.getLogger(__name__)

FetchFn = Callable[[SourceRef], Awaitable[list[FeedItem]]]


class FeedFetcher:
    """
    Fetches sources grouped by language.

    Each language gets its own queue, sorted by ascending priority, and
    its own pool of `concurrency` workers. A failing source becomes a
    `success=False` result; it never raises into the pool.
    """

    def __init__(
        self,
        fetch: FetchFn,
        concurrency: int = 10,
        retry_attempts: int = 3,
        retry_delay: float = 2.0,
    ):
        self.fetch = fetch
        self.concurrency = max(1, concurrency)
        self.retry_attempts = retry_attempts
        self.retry_delay = retry_delay

    async def fetch_all(self, sources: Iterable[SourceRef]) -> FetchReport:
        started = time.perf_counter()
        partitions: dict[str, list[SourceRef]] = defaultdict(list)
        for source in sources:
            partitions[source.language].append(source)

        per_language = await asyncio.gather(
            *(self._fetch_partition(language, batch) for language, batch in partitions.items())
        )
        results = [result for batch in per_language for result in batch]
        stats = compute_stats(results)
        duration_ms = int((time.perf_counter() - started) * 1000)

        logger.info(
            "Fetched %d sources (%d ok, %d failed, %d items) in %dms",
            stats.total,
            stats.successful,
            stats.failed,
            stats.items,
            duration_ms,
        )
        return FetchReport(results=results, stats=stats, duration_ms=duration_ms)

    async def _fetch_partition(self, language: str, sources: list[SourceRef]) -> list[FetchResult]:
        queue: asyncio.Queue[SourceRef] = asyncio.Queue()
        for source in sorted(sources, key=lambda s: s.priority):
            queue.put_nowait(source)

        results: list[FetchResult] = []
        workers = min(self.concurrency, len(sources))
        logger.debug("Starting %d workers for %d %s sources", workers, len(sources), language)

        async def worker() -> None:
            while True:
                try:
                    source = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                results.append(await self.fetch_source(source))

        await asyncio.gather(*(worker() for _ in range(workers)))
        return results

    async def fetch_source(self, source: SourceRef) -> FetchResult:
        """Fetch one source with retries, capturing any failure in the result."""
        started = time.perf_counter()
        try:
            items = await with_retry(
                lambda: self.fetch(source),
                attempts=self.retry_attempts,
                delay=self.retry_delay,
                backoff=1,
                label=f"fetch {source.name}",
            )
        except Exception as e:
            logger.warning("Source %s failed: %s: %s", source.name, type(e).__name__, e)
            return FetchResult(
                source_id=source.id,
                source_name=source.name,
                language=source.language,
                success=False,
                error=f"{type(e).__name__}: {e}"[:500],
                duration_ms=int((time.perf_counter() - started) * 1000),
            )

        return FetchResult(
            source_id=source.id,
            source_name=source.name,
            language=source.language,
            items=items,
            success=True,
            duration_ms=int((time.perf_counter() - started) * 1000),
        )


def compute_stats(results: list[FetchResult]) -> FetchStats:
    stats = FetchStats()
    for result in results:
        language = stats.by_language.setdefault(result.language, LanguageStats())
        stats.total += 1
        language.total += 1
        if result.success:
            stats.successful += 1
            language.successful += 1
            stats.items += len(result.items)
            language.items += len(result.items)
        else:
            stats.failed += 1
            language.failed += 1
    return stats


def build_http_fetcher(client: httpx.AsyncClient, settings: Settings) -> FeedFetcher:
    """FeedFetcher that downloads real feeds through `client`."""

    async def fetch(source: SourceRef) -> list[FeedItem]:
        return await fetch_feed(client, source.feed_url)

    return FeedFetcher(
        fetch,
        concurrency=settings.fetch_concurrency_per_language,
        retry_attempts=settings.fetch_retry_attempts,
        retry_delay=settings.fetch_retry_delay_seconds,
    )


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=settings.fetch_timeout_seconds,
        follow_redirects=True,
        headers={"User-Agent": settings.fetch_user_agent},
    )
