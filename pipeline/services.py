"""
Process-wide wiring of the sync pipeline.

The worker, the API and the scripts each build one `SyncServices` at
startup and close it on shutdown. Tests build the same graph around fake
clients by passing them in.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from core.clients import build_http_client, build_redis_client, build_s3_client
from core.database import build_engine, build_session_factory
from pipeline.extractors.catalog_extractor import CatalogExtractor
from pipeline.extractors.images import ImageRehoster
from pipeline.intake import SyncIntake
from pipeline.loaders.finalizer import SyncFinalizer
from pipeline.processor import SyncJobProcessor
from pipeline.queue import RedisJobQueue
from pipeline.retry import SyncRetryService
from pipeline.scraper import RetryingScraper
from pipeline.status.broadcaster import LiveStatusBroadcaster
from pipeline.status.store import SyncStatusStore

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    engine: AsyncEngine
    session_factory: async_sessionmaker
    http_client: httpx.AsyncClient
    redis_client: redis.Redis
    broadcaster: LiveStatusBroadcaster
    status_store: SyncStatusStore
    queue: RedisJobQueue
    scraper: RetryingScraper
    finalizer: SyncFinalizer
    processor: SyncJobProcessor
    intake: SyncIntake
    retry: SyncRetryService

    async def close(self):
        await self.http_client.aclose()
        await self.redis_client.aclose()
        await self.engine.dispose()
        logger.info("Sync services closed")


def build_services(
    engine: Optional[AsyncEngine] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    redis_client: Optional[redis.Redis] = None,
    s3_client=None,
    scraper_sleep=None,
) -> SyncServices:
    """Build the component graph; any client left out is built from settings."""
    engine = engine or build_engine()
    session_factory = build_session_factory(engine)
    http_client = http_client or build_http_client()
    redis_client = redis_client or build_redis_client()
    s3_client = s3_client or build_s3_client()

    broadcaster = LiveStatusBroadcaster(redis_client)
    status_store = SyncStatusStore(session_factory, broadcaster)
    queue = RedisJobQueue(redis_client)

    extractor = CatalogExtractor(http_client, ImageRehoster(http_client, s3_client))
    if scraper_sleep is not None:
        scraper = RetryingScraper(extractor, status_store, sleep=scraper_sleep)
    else:
        scraper = RetryingScraper(extractor, status_store)
    finalizer = SyncFinalizer(session_factory, status_store)

    return SyncServices(
        engine=engine,
        session_factory=session_factory,
        http_client=http_client,
        redis_client=redis_client,
        broadcaster=broadcaster,
        status_store=status_store,
        queue=queue,
        scraper=scraper,
        finalizer=finalizer,
        processor=SyncJobProcessor(scraper, finalizer, status_store),
        intake=SyncIntake(status_store, queue),
        retry=SyncRetryService(status_store, queue),
    )
