"""
Retrying, rate-limited scraping of catalog items.

Per item: up to `max_retries` attempts, sleeping base_delay_ms * 2^(n-1)
after failed attempt n. Per batch: up to `batch_size` items run
concurrently; larger batches run in chunks of `batch_size` with a fixed
pause between chunks. An item that exhausts its retries becomes a
ScrapeFailure; it never aborts its siblings.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Union

from core.config import settings
from core.exceptions import ScrapeError
from pipeline.extractors.catalog_extractor import CatalogExtractor
from pipeline.status.store import SyncStatusStore
from schemas.scraped import ScrapedRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], Awaitable[None]]


@dataclass(frozen=True)
class ScrapeSuccess:
    external_id: int
    record: ScrapedRecord
    attempts: int


@dataclass(frozen=True)
class ScrapeFailure:
    external_id: int
    reason: str
    attempts: int


ScrapeOutcome = Union[ScrapeSuccess, ScrapeFailure]


@dataclass
class ScrapeBatchResult:
    successes: List[ScrapeSuccess] = field(default_factory=list)
    failures: List[ScrapeFailure] = field(default_factory=list)

    @property
    def records(self) -> List[ScrapedRecord]:
        return [s.record for s in self.successes]

    @property
    def scraped_ids(self) -> List[int]:
        return [s.external_id for s in self.successes]

    @property
    def failure_reasons(self) -> Dict[int, str]:
        return {f.external_id: f.reason for f in self.failures}


def chunk_ids(item_ids: Sequence[int], batch_size: int) -> List[List[int]]:
    """One chunk for small batches, otherwise consecutive chunks of batch_size."""
    ids = list(item_ids)
    if len(ids) <= batch_size:
        return [ids] if ids else []
    return [ids[i:i + batch_size] for i in range(0, len(ids), batch_size)]


class RetryingScraper:
    """
    Wrap a CatalogExtractor with retry, batching and progress reporting.

    Attributes:
        extractor: Fetches and parses a single item
        batch_size: Items per concurrent chunk (default: 5)
        batch_delay_ms: Pause between chunks (default: 2000)
        sleep: Awaitable sleep in seconds, replaceable in tests
    """

    def __init__(
        self,
        extractor: CatalogExtractor,
        status_store: Optional[SyncStatusStore] = None,
        batch_size: Optional[int] = None,
        batch_delay_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.extractor = extractor
        self.status_store = status_store
        self.batch_size = batch_size or settings.SCRAPE_BATCH_SIZE
        self.batch_delay_ms = settings.SCRAPE_BATCH_DELAY_MS if batch_delay_ms is None else batch_delay_ms
        self.sleep = sleep

    async def scrape_one(self, external_id: int, max_retries: int, base_delay_ms: int) -> ScrapeOutcome:
        last_error = "Scrape failed"

        for attempt in range(1, max_retries + 1):
            try:
                record = await self.extractor.fetch_and_parse(external_id)
                if attempt > 1:
                    logger.info(f"Scraped ID {external_id} on attempt {attempt}")
                return ScrapeSuccess(external_id=external_id, record=record, attempts=attempt)

            except ScrapeError as e:
                last_error = e.message
                logger.warning(f"Error scraping ID {external_id} (attempt {attempt}/{max_retries}): {e}")

            except Exception as e:
                last_error = f"Unexpected error: {e}"
                logger.exception(f"Unexpected error scraping ID {external_id} (attempt {attempt}/{max_retries})")

            if attempt < max_retries:
                delay_ms = base_delay_ms * 2 ** (attempt - 1)
                logger.debug(f"Retrying ID {external_id} in {delay_ms}ms")
                await self.sleep(delay_ms / 1000)

        logger.error(f"Failed to scrape ID {external_id} after {max_retries} attempts")
        return ScrapeFailure(external_id=external_id, reason=last_error, attempts=max_retries)

    async def scrape(
        self,
        item_ids: Sequence[int],
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> ScrapeBatchResult:
        """Scrape every id; failures are returned, never raised."""
        max_retries = max_retries or settings.MAX_RETRIES
        base_delay_ms = settings.BASE_RETRY_DELAY_MS if base_delay_ms is None else base_delay_ms

        chunks = chunk_ids(item_ids, self.batch_size)
        total = sum(len(chunk) for chunk in chunks)
        resolved = 0
        started = time.perf_counter()

        async def run(external_id: int) -> ScrapeOutcome:
            nonlocal resolved
            outcome = await self.scrape_one(external_id, max_retries, base_delay_ms)
            resolved += 1
            if on_progress is not None:
                await on_progress(resolved, total)
            return outcome

        result = ScrapeBatchResult()
        for index, chunk in enumerate(chunks):
            if index > 0:
                logger.info(f"Waiting {self.batch_delay_ms}ms before next batch")
                await self.sleep(self.batch_delay_ms / 1000)

            logger.info(f"Processing batch {index + 1}/{len(chunks)} ({len(chunk)} items)")
            for outcome in await asyncio.gather(*(run(external_id) for external_id in chunk)):
                if isinstance(outcome, ScrapeSuccess):
                    result.successes.append(outcome)
                else:
                    result.failures.append(outcome)

        duration = time.perf_counter() - started
        logger.info(
            f"Scraped {len(result.successes)} out of {total} items in {duration:.2f}s"
        )
        return result

    async def scrape_for_session(
        self,
        sync_session_id: str,
        job_id: str,
        item_ids: Sequence[int],
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ) -> ScrapeBatchResult:
        """
        Scrape for a session: progress goes to the live key after each item,
        and the scraped/failed partition is recorded in one batched write.
        """
        if self.status_store is None:
            raise ValueError("scrape_for_session requires a status store")

        async def report(done: int, total: int) -> None:
            await self.status_store.publish_progress(job_id, f"Syncing... {done}/{total}")

        result = await self.scrape(item_ids, max_retries, base_delay_ms, on_progress=report)

        await self.status_store.record_scrape_outcome(
            sync_session_id,
            scraped_ids=result.scraped_ids,
            failures=result.failure_reasons,
        )
        return result
