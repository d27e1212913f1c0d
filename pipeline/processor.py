# ============================================================================
# File: pipeline/processor.py
# Description: Runs one sync job from payload validation to terminal status
# ============================================================================
"""
Sync job processor.

Phases:
1. Validate - parse the queue payload (fatal on failure, no retry)
2. Scrape   - retrying, rate-limited scrape of the distinct item ids
3. Finalize - persist and write the terminal session status

A scrape or persistence failure degrades the session to partial or failed;
the job itself still completes. Only an invalid payload or an unexpected
error escapes to the worker.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.exceptions import JobPayloadError, SyncException
from models.base import SyncSessionStatus
from pipeline.loaders.finalizer import FinalizeFailure, SyncFinalizer
from pipeline.scraper import RetryingScraper
from pipeline.status.store import SyncStatusStore
from schemas.jobs import parse_job_payload

logger = logging.getLogger(__name__)

SCRAPE_FAILED_MESSAGE = (
    "Sync failed: Failed to scrape items. Please try again. "
    "MFC might be down, or the MFC item IDs may be invalid."
)
INVALID_PAYLOAD_MESSAGE = "Sync failed: Invalid sync job data."
UNEXPECTED_ERROR_MESSAGE = "Sync failed: Unexpected error while processing the sync job."


@dataclass(frozen=True)
class JobOutcome:
    job_id: str
    sync_session_id: str
    scraped: int
    failed: int
    persisted: bool


class SyncJobProcessor:
    """
    Orchestrates Scrape → Assemble → Finalize for one queued job.

    Responsibilities:
    - Reject malformed payloads without retry
    - Skip persistence when nothing was scraped
    - Hand successes to the finalizer, which reports the outcome
    """

    def __init__(
        self,
        scraper: RetryingScraper,
        finalizer: SyncFinalizer,
        status_store: SyncStatusStore,
        max_retries: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
    ):
        self.scraper = scraper
        self.finalizer = finalizer
        self.status_store = status_store
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.base_delay_ms = settings.BASE_RETRY_DELAY_MS if base_delay_ms is None else base_delay_ms

    async def process(self, job_id: str, data: Dict[str, Any]) -> JobOutcome:
        """
        Run one job.

        Raises:
            JobPayloadError: payload failed validation (session marked failed)
        """
        # --------------------------------------------------
        # PHASE 1: VALIDATE
        # --------------------------------------------------
        try:
            payload = parse_job_payload(data)
        except ValidationError as e:
            await self._fail_invalid_payload(job_id, data, e)
            raise JobPayloadError(
                "Invalid sync job data",
                context={"job_id": job_id, "errors": e.errors(include_url=False, include_context=False)},
                original_exception=e,
            )

        sync_session_id = payload.sync_session_id
        item_ids = payload.item_ids()

        try:
            await self.status_store.set_status(
                sync_session_id,
                SyncSessionStatus.PROCESSING,
                f"Starting to sync {len(item_ids)} items",
                job_id=job_id,
            )

            # --------------------------------------------------
            # PHASE 2: SCRAPE
            # --------------------------------------------------
            if item_ids:
                batch = await self.scraper.scrape_for_session(
                    sync_session_id, job_id, item_ids, self.max_retries, self.base_delay_ms,
                )
                records = batch.records
                failed = len(batch.failures)

                if not records:
                    await self._complete_without_successes(payload)
                    return JobOutcome(job_id, sync_session_id, scraped=0, failed=failed, persisted=False)
            else:
                records, failed = [], 0

            # --------------------------------------------------
            # PHASE 3: FINALIZE
            # --------------------------------------------------
            result = await self.finalizer.run(payload, records)

        except Exception:
            logger.exception(f"Sync job {job_id} failed unexpectedly")
            await self._fail_session(sync_session_id, job_id)
            raise

        return JobOutcome(
            job_id,
            sync_session_id,
            scraped=len(records),
            failed=failed,
            persisted=not isinstance(result, FinalizeFailure),
        )

    async def _complete_without_successes(self, payload) -> None:
        success_count = payload.existing_count
        fail_count = payload.scrape_row_count

        if success_count > 0:
            status = SyncSessionStatus.PARTIAL
            message = f"Sync partially completed: Failed to scrape {fail_count} pending items."
        else:
            status = SyncSessionStatus.FAILED
            message = SCRAPE_FAILED_MESSAGE

        await self.status_store.complete(payload.sync_session_id, status, message, success_count, fail_count)

    async def _fail_invalid_payload(self, job_id: str, data: Dict[str, Any], error: ValidationError) -> None:
        logger.error(f"Job {job_id} has invalid data: {error.error_count()} validation errors")

        sync_session_id = None
        if isinstance(data, dict):
            sync_session_id = data.get("syncSessionId") or data.get("sync_session_id")
        if not isinstance(sync_session_id, str):
            logger.error(f"Job {job_id} has no usable sync session id; nothing to mark failed")
            return

        await self._fail_session(sync_session_id, job_id, INVALID_PAYLOAD_MESSAGE)

    async def _fail_session(self, sync_session_id: str, job_id: str, message: str = UNEXPECTED_ERROR_MESSAGE) -> None:
        try:
            await self.status_store.set_status(sync_session_id, SyncSessionStatus.FAILED, message, job_id=job_id)
        except (SyncException, SQLAlchemyError) as e:
            logger.error(f"Could not mark sync session {sync_session_id} failed: {e}")
