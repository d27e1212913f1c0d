"""
Live status projection for polling/streaming clients.

Each job has one Redis key, `job:{job_id}:status`, holding
`{status, finished, createdAt, terminalState}` with a short expiry. The
durable sync_session row is always written first; this key may lag behind
it or be missing entirely, and nothing but the live UI reads it.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import redis.asyncio as redis

from core.config import settings
from models.base import SyncSessionStatus

logger = logging.getLogger(__name__)

TERMINAL_STATE_BY_STATUS = {
    SyncSessionStatus.COMPLETED: "success",
    SyncSessionStatus.PARTIAL: "error",
    SyncSessionStatus.FAILED: "error",
}


def status_key(job_id: str) -> str:
    return f"job:{job_id}:status"


def terminal_state_for(status: Optional[SyncSessionStatus]) -> Optional[str]:
    if status is None:
        return None
    return TERMINAL_STATE_BY_STATUS.get(SyncSessionStatus(status))


class LiveStatusBroadcaster:
    """Best-effort writer and reader of the per-job status key."""

    def __init__(self, redis_client: redis.Redis, ttl_seconds: Optional[int] = None):
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds or settings.JOB_STATUS_TTL_SECONDS

    async def publish(
        self,
        job_id: Optional[str],
        status_message: str,
        finished: bool,
        session_status: Optional[SyncSessionStatus] = None,
        only_if_absent: bool = False,
    ) -> bool:
        """
        Write the status key. Returns False when the write failed or was skipped.

        With `only_if_absent` an existing key is kept, so a status already
        written by the worker is not replaced. Redis errors are logged, never
        raised.
        """
        if not job_id:
            return False

        payload = {
            "status": status_message,
            "finished": finished,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "terminalState": terminal_state_for(session_status) if finished else None,
        }

        try:
            written = await self.redis.set(
                status_key(job_id),
                json.dumps(payload),
                ex=self.ttl_seconds,
                nx=only_if_absent,
            )
        except redis.RedisError as e:
            logger.warning(f"Live status write failed for job {job_id}: {e}")
            return False

        return bool(written)

    async def read(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = await self.redis.get(status_key(job_id))
        if raw is None:
            return None
        return json.loads(raw)
