"""
Retry of a partial or failed sync session.

Only the failed items go back on the queue. Their caller rows are rebuilt
from the item metadata stored at intake, and `existing_count` carries the
rows that already succeeded so the final counts stay in caller rows.
"""

import logging
from typing import Any, Dict, List

from core.exceptions import QueueError
from models.base import SyncType
from models.sync_session import SyncSession, SyncSessionItem
from pipeline.queue import RedisJobQueue
from pipeline.status.store import SyncStatusStore

logger = logging.getLogger(__name__)


def build_retry_request(sync_session: SyncSession, failed_items: List[SyncSessionItem]) -> Dict[str, Any]:
    """Queue payload that re-scrapes `failed_items` of `sync_session`."""
    rows = [row for item in failed_items for row in (item.item_metadata or [])]
    pending_inserts = list(sync_session.pending_inserts or [])
    sync_type = SyncType(sync_session.sync_type)

    request: Dict[str, Any] = {
        "type": sync_type.value,
        "userId": sync_session.user_id,
        "syncSessionId": sync_session.id,
        "existingCount": sync_session.success_count,
    }
    if sync_type == SyncType.CSV:
        request["items"] = rows
    elif sync_type == SyncType.ORDER:
        request["order"] = {
            "details": sync_session.order_details,
            "itemsToScrape": rows,
            "itemsToInsert": pending_inserts,
        }
    else:
        request["collection"] = {
            "itemsToScrape": rows,
            "itemsToInsert": pending_inserts,
        }
    return request


class SyncRetryService:
    def __init__(self, status_store: SyncStatusStore, queue: RedisJobQueue):
        self.status_store = status_store
        self.queue = queue

    async def retry(self, sync_session_id: str) -> int:
        """
        Reset the failed items and enqueue a new job for them.

        Returns:
            Number of items re-enqueued

        Raises:
            SessionNotFoundError: unknown session
            RetryNotAllowedError: session is not partial/failed or has nothing to retry
            QueueError: the job could not be enqueued (the reset is undone)
        """
        before = await self.status_store.get_session(sync_session_id)
        error_reasons = {
            item.item_external_id: item.error_reason
            for item in await self.status_store.get_failed_items(sync_session_id)
        }

        failed_items = await self.status_store.reset_for_retry(sync_session_id)
        sync_session = await self.status_store.get_session(sync_session_id)

        try:
            job_id = await self.queue.enqueue(build_retry_request(sync_session, failed_items))
        except QueueError:
            logger.error(f"Sync session {sync_session_id}: retry job could not be queued")
            await self.status_store.undo_retry_reset(sync_session_id, before, error_reasons)
            raise

        # The worker may already own the session; only the job id is ours to set
        await self.status_store.attach_job(sync_session_id, job_id)
        await self.status_store.announce_job(job_id, sync_session.status_message)

        logger.info(f"Sync session {sync_session_id}: re-enqueued {len(failed_items)} items as job {job_id}")
        return len(failed_items)
