"""
Job intake: turn a caller's sync request into a session and a queued job.

The request carries everything but the session id. Intake validates it,
creates the durable session with one pending item per distinct external
id (keeping the caller rows as item metadata so a retry can rebuild
them), enqueues the job and publishes the first live status.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from core.exceptions import JobPayloadError, QueueError
from models.base import SyncSessionStatus, SyncType
from pipeline.queue import RedisJobQueue
from pipeline.status.store import SyncStatusStore
from schemas.jobs import (
    BaseJobPayload,
    CollectionJobPayload,
    OrderJobPayload,
    dump_job_payload,
    dump_row,
    parse_job_payload,
)

logger = logging.getLogger(__name__)

# Placeholder until the session row exists
_UNASSIGNED_SESSION = "unassigned"

QUEUE_FAILED_MESSAGE = "Sync failed: Could not queue the sync job. Please try again."


@dataclass(frozen=True)
class SyncSubmission:
    sync_session_id: str
    job_id: str
    item_count: int


def group_rows_by_item(payload: BaseJobPayload) -> Dict[int, List[dict]]:
    """Caller rows to scrape, grouped by external id in first-seen order."""
    grouped: Dict[int, List[dict]] = OrderedDict()
    for row in payload.scrape_rows():
        grouped.setdefault(row.item_external_id, []).append(dump_row(row))
    return grouped


def insert_rows(payload: BaseJobPayload) -> list:
    """Caller rows persisted without scraping."""
    if isinstance(payload, OrderJobPayload):
        return payload.order.items_to_insert
    if isinstance(payload, CollectionJobPayload):
        return payload.collection.items_to_insert
    return []


class SyncIntake:
    def __init__(self, status_store: SyncStatusStore, queue: RedisJobQueue):
        self.status_store = status_store
        self.queue = queue

    async def submit(self, request: Dict[str, Any]) -> SyncSubmission:
        """
        Create the session and enqueue its job.

        Raises:
            JobPayloadError: request failed validation (nothing is created)
            QueueError: the job could not be enqueued (the session is marked failed)
        """
        try:
            payload = parse_job_payload({**request, "syncSessionId": _UNASSIGNED_SESSION})
        except ValidationError as e:
            raise JobPayloadError(
                "Invalid sync request",
                context={"errors": e.errors(include_url=False, include_context=False)},
                original_exception=e,
            )

        item_metadata = group_rows_by_item(payload)
        order_details: Optional[dict] = None
        if isinstance(payload, OrderJobPayload):
            order_details = dump_row(payload.order.details)

        sync_session = await self.status_store.create_session(
            user_id=payload.user_id,
            sync_type=SyncType(payload.type),
            total_items=payload.existing_count + payload.scrape_row_count,
            item_metadata=item_metadata,
            order_details=order_details,
            pending_inserts=[dump_row(row) for row in insert_rows(payload)],
        )

        payload = payload.model_copy(update={"sync_session_id": sync_session.id})
        try:
            job_id = await self.queue.enqueue(dump_job_payload(payload))
        except QueueError:
            logger.error(f"Sync session {sync_session.id}: job could not be queued")
            await self.status_store.set_status(sync_session.id, SyncSessionStatus.FAILED, QUEUE_FAILED_MESSAGE)
            raise

        await self.status_store.attach_job(sync_session.id, job_id)
        await self.status_store.announce_job(job_id, "Sync queued")

        logger.info(f"Queued job {job_id} for sync session {sync_session.id} ({len(item_metadata)} items)")
        return SyncSubmission(sync_session_id=sync_session.id, job_id=job_id, item_count=len(item_metadata))
