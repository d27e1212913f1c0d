import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from core.config import settings
from core.exceptions import SyncException
from pipeline.processor import SyncJobProcessor
from pipeline.queue import RedisJobQueue

logger = logging.getLogger(__name__)


class SyncWorker:
    """
    Pulls sync jobs off the queue with a fixed number of slots.

    Each slot is an interval job that claims at most one queued job per
    run; max_instances=1 keeps a slot from overlapping itself, so at most
    `concurrency` jobs are in flight.
    """

    def __init__(
        self,
        queue: RedisJobQueue,
        processor: SyncJobProcessor,
        concurrency: int = None,
        poll_interval_seconds: float = None,
        dequeue_timeout_seconds: float = None,
    ):
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.poll_interval_seconds = poll_interval_seconds or settings.WORKER_POLL_INTERVAL_SECONDS
        self.dequeue_timeout_seconds = (
            settings.WORKER_DEQUEUE_TIMEOUT_SECONDS if dequeue_timeout_seconds is None else dequeue_timeout_seconds
        )
        self.scheduler = AsyncIOScheduler()

    async def run_slot(self, slot: int) -> bool:
        """Claim and process one job. Returns False when the queue was empty."""
        job = await self.queue.dequeue(timeout=self.dequeue_timeout_seconds)
        if job is None:
            return False

        logger.info(f"Worker slot {slot}: processing job {job.job_id}")
        try:
            outcome = await self.processor.process(job.job_id, job.data)

        except SyncException as e:
            logger.error(f"Worker slot {slot}: job {job.job_id} failed - {e}")
            await self.queue.fail(job, e.message)
            return True

        except Exception as e:
            logger.exception(f"Worker slot {slot}: job {job.job_id} crashed")
            await self.queue.fail(job, str(e))
            return True

        await self.queue.ack(job)
        logger.info(
            f"Worker slot {slot}: job {job.job_id} done "
            f"({outcome.scraped} scraped, {outcome.failed} failed)"
        )
        return True

    async def start(self):
        """Recover jobs orphaned by a previous worker, then start the slots."""
        await self.queue.requeue_active()

        for slot in range(self.concurrency):
            self.scheduler.add_job(
                self.run_slot,
                trigger=IntervalTrigger(seconds=self.poll_interval_seconds),
                args=[slot],
                id=f"sync_slot_{slot}",
                max_instances=1,
                coalesce=True,
                next_run_time=datetime.now(),
                replace_existing=True,
            )
        self.scheduler.start()
        logger.info(f"Sync worker started with {self.concurrency} slots on queue {self.queue.name}")

    def stop(self):
        self.scheduler.shutdown(wait=False)
        logger.info("Sync worker stopped")
