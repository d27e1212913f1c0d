"""
Durable sync job queue on Redis lists.

Keys (prefix = queue name, default "sync-queue"):
    {prefix}:id          job id counter
    {prefix}:wait        job ids waiting, oldest on the right
    {prefix}:active      job ids claimed by a worker slot
    {prefix}:completed   recently finished job ids (capped)
    {prefix}:failed      job ids that failed fatally (capped)
    {prefix}:job:{id}    JSON job record

A job moves wait -> active atomically (BLMOVE). If a worker dies, its
active jobs are pushed back to wait by `requeue_active` at next start.
"""

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as redis

from core.config import settings
from core.exceptions import QueueError

logger = logging.getLogger(__name__)

FINISHED_HISTORY = 1000


@dataclass(frozen=True)
class QueuedJob:
    job_id: str
    data: Dict[str, Any]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class RedisJobQueue:
    def __init__(self, redis_client: redis.Redis, name: Optional[str] = None):
        self.redis = redis_client
        self.name = name or settings.SYNC_QUEUE_NAME

    def _key(self, suffix: str) -> str:
        return f"{self.name}:{suffix}"

    def job_key(self, job_id: str) -> str:
        return self._key(f"job:{job_id}")

    async def enqueue(self, data: Dict[str, Any]) -> str:
        """Store the job and append it to the wait list. Returns the job id."""
        try:
            job_id = str(await self.redis.incr(self._key("id")))
            record = {"id": job_id, "data": data, "state": "waiting", "enqueuedAt": _now()}
            await self.redis.set(self.job_key(job_id), json.dumps(record))
            await self.redis.lpush(self._key("wait"), job_id)
        except redis.RedisError as e:
            raise QueueError("Failed to enqueue sync job", context={"queue": self.name}, original_exception=e)

        logger.info(f"Enqueued job {job_id} on {self.name}")
        return job_id

    async def dequeue(self, timeout: float = 0) -> Optional[QueuedJob]:
        """Claim the oldest waiting job, blocking up to `timeout` seconds."""
        job_id = await self.redis.blmove(
            self._key("wait"), self._key("active"), timeout, src="RIGHT", dest="LEFT",
        )
        if job_id is None:
            return None

        raw = await self.redis.get(self.job_key(job_id))
        if raw is None:
            logger.warning(f"Job {job_id} has no stored record; dropping it")
            await self.redis.lrem(self._key("active"), 1, job_id)
            return None

        record = json.loads(raw)
        record["state"] = "active"
        record["startedAt"] = _now()
        await self.redis.set(self.job_key(job_id), json.dumps(record))
        return QueuedJob(job_id=job_id, data=record["data"])

    async def ack(self, job: QueuedJob) -> None:
        await self._finish(job, "completed")

    async def fail(self, job: QueuedJob, reason: str) -> None:
        await self._finish(job, "failed", reason)

    async def _finish(self, job: QueuedJob, state: str, reason: Optional[str] = None) -> None:
        raw = await self.redis.get(self.job_key(job.job_id))
        record = json.loads(raw) if raw else {"id": job.job_id, "data": job.data}
        record["state"] = state
        record["finishedAt"] = _now()
        if reason is not None:
            record["failedReason"] = reason

        await self.redis.set(self.job_key(job.job_id), json.dumps(record))
        await self.redis.lrem(self._key("active"), 1, job.job_id)
        await self.redis.lpush(self._key(state), job.job_id)
        await self.redis.ltrim(self._key(state), 0, FINISHED_HISTORY - 1)

    async def waiting_count(self) -> int:
        return await self.redis.llen(self._key("wait"))

    async def get_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(self.job_key(job_id))
        return json.loads(raw) if raw else None

    async def requeue_active(self) -> int:
        """Push every active job back to the front of the wait list."""
        moved = 0
        while await self.redis.lmove(self._key("active"), self._key("wait"), src="LEFT", dest="RIGHT") is not None:
            moved += 1
        if moved:
            logger.warning(f"Requeued {moved} jobs left active by a previous worker")
        return moved
