"""
Durable state machine for sync sessions and their items.

Session states:
    pending -> processing -> completed | partial | failed
    partial | failed -> pending (explicit retry only)
    pending -> partial | failed (retry job could not be queued)

Item states:
    pending -> scraped | failed
    scraped -> failed (finalize rolled back)
    failed -> pending (explicit retry only)

Every status change is written to the sync_session row first and then
mirrored to the live status key.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import selectinload

from core.exceptions import (
    RetryNotAllowedError,
    SessionNotFoundError,
    StatusTransitionError,
)
from models.base import (
    SyncSessionItemStatus,
    SyncSessionStatus,
    SyncType,
    TERMINAL_SESSION_STATUSES,
    utcnow,
)
from models.sync_session import SyncSession, SyncSessionItem
from pipeline.status.broadcaster import LiveStatusBroadcaster

logger = logging.getLogger(__name__)

ALLOWED_SESSION_TRANSITIONS = {
    SyncSessionStatus.PENDING: {
        SyncSessionStatus.PENDING,
        SyncSessionStatus.PROCESSING,
        SyncSessionStatus.FAILED,
    },
    SyncSessionStatus.PROCESSING: {
        SyncSessionStatus.PROCESSING,
        SyncSessionStatus.COMPLETED,
        SyncSessionStatus.PARTIAL,
        SyncSessionStatus.FAILED,
    },
    SyncSessionStatus.PARTIAL: {SyncSessionStatus.PENDING},
    SyncSessionStatus.FAILED: {SyncSessionStatus.PENDING},
    SyncSessionStatus.COMPLETED: set(),
}

RETRYABLE_SESSION_STATUSES = {SyncSessionStatus.PARTIAL, SyncSessionStatus.FAILED}


def resolve_session_status(success_count: int, fail_count: int) -> SyncSessionStatus:
    """Terminal status for the final counts of a job."""
    if fail_count == 0:
        return SyncSessionStatus.COMPLETED
    if success_count > 0:
        return SyncSessionStatus.PARTIAL
    return SyncSessionStatus.FAILED


class SyncStatusStore:
    """
    Owner of sync_session and sync_session_item rows.

    Each method runs in its own short transaction.
    """

    def __init__(self, session_factory: async_sessionmaker, broadcaster: LiveStatusBroadcaster):
        self.session_factory = session_factory
        self.broadcaster = broadcaster

    # --------------------------------------------------
    # Reads
    # --------------------------------------------------

    async def get_session(self, sync_session_id: str) -> SyncSession:
        async with self.session_factory() as db:
            sync_session = await db.get(SyncSession, sync_session_id)
        if sync_session is None:
            raise SessionNotFoundError(
                f"Sync session {sync_session_id} not found",
                context={"sync_session_id": sync_session_id},
            )
        return sync_session

    async def get_session_with_items(self, sync_session_id: str) -> SyncSession:
        async with self.session_factory() as db:
            result = await db.execute(
                select(SyncSession)
                .where(SyncSession.id == sync_session_id)
                .options(selectinload(SyncSession.items))
            )
            sync_session = result.scalars().first()
        if sync_session is None:
            raise SessionNotFoundError(
                f"Sync session {sync_session_id} not found",
                context={"sync_session_id": sync_session_id},
            )
        return sync_session

    async def find_by_job_id(self, job_id: str) -> Optional[SyncSession]:
        """Latest session that ran under `job_id`, if any."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(SyncSession)
                .where(SyncSession.job_id == job_id)
                .order_by(SyncSession.updated_at.desc())
                .limit(1)
            )
            return result.scalars().first()

    async def get_items(
        self,
        sync_session_id: str,
        status: Optional[SyncSessionItemStatus] = None,
    ) -> List[SyncSessionItem]:
        stmt = select(SyncSessionItem).where(SyncSessionItem.sync_session_id == sync_session_id)
        if status is not None:
            stmt = stmt.where(SyncSessionItem.status == status)
        stmt = stmt.order_by(SyncSessionItem.created_at, SyncSessionItem.item_external_id)

        async with self.session_factory() as db:
            result = await db.execute(stmt)
            return list(result.scalars().all())

    async def get_failed_items(self, sync_session_id: str) -> List[SyncSessionItem]:
        return await self.get_items(sync_session_id, SyncSessionItemStatus.FAILED)

    # --------------------------------------------------
    # Session lifecycle
    # --------------------------------------------------

    async def create_session(
        self,
        user_id: str,
        sync_type: SyncType,
        total_items: int,
        item_metadata: Dict[int, List[dict]],
        order_details: Optional[dict] = None,
        order_id: Optional[str] = None,
        pending_inserts: Optional[List[dict]] = None,
    ) -> SyncSession:
        """Create a pending session with one pending item per external id."""
        sync_session = SyncSession(
            user_id=user_id,
            sync_type=sync_type,
            status=SyncSessionStatus.PENDING,
            status_message="Sync queued",
            total_items=total_items,
            order_details=order_details,
            order_id=order_id,
            pending_inserts=pending_inserts or [],
        )
        sync_session.items = [
            SyncSessionItem(item_external_id=external_id, item_metadata=rows)
            for external_id, rows in item_metadata.items()
        ]

        async with self.session_factory() as db:
            db.add(sync_session)
            await db.commit()

        logger.info(
            f"Created {SyncType(sync_type).value} sync session {sync_session.id} "
            f"({len(item_metadata)} items, {total_items} rows)"
        )
        return sync_session

    async def attach_job(self, sync_session_id: str, job_id: str) -> None:
        async with self.session_factory() as db:
            sync_session = await self._load(db, sync_session_id)
            sync_session.job_id = job_id
            await db.commit()

    async def set_status(
        self,
        sync_session_id: str,
        status: SyncSessionStatus,
        status_message: str,
        job_id: Optional[str] = None,
    ) -> SyncSession:
        """Move the session to a non-final or final status without touching counts."""
        async with self.session_factory() as db:
            sync_session = await self._load(db, sync_session_id)
            self._apply_status(sync_session, status, status_message)
            if job_id:
                sync_session.job_id = job_id
            await db.commit()

        await self._broadcast(sync_session)
        return sync_session

    async def publish_progress(self, job_id: str, status_message: str) -> None:
        """Progress lines only go to the live key; the row keeps its last status."""
        await self.broadcaster.publish(job_id, status_message, finished=False)

    async def announce_job(self, job_id: str, status_message: str) -> bool:
        """First live status of a freshly queued job, unless the worker already wrote one."""
        return await self.broadcaster.publish(job_id, status_message, finished=False, only_if_absent=True)

    async def complete(
        self,
        sync_session_id: str,
        status: SyncSessionStatus,
        status_message: str,
        success_count: int,
        fail_count: int,
    ) -> SyncSession:
        """Record final counts and a terminal status in one write."""
        status = SyncSessionStatus(status)
        if status not in TERMINAL_SESSION_STATUSES:
            raise StatusTransitionError(
                f"{status.value} is not a terminal status",
                context={"sync_session_id": sync_session_id},
            )

        async with self.session_factory() as db:
            sync_session = await self._load(db, sync_session_id)

            if success_count < 0 or fail_count < 0 or success_count + fail_count > sync_session.total_items:
                raise StatusTransitionError(
                    "Session counts exceed total items",
                    context={
                        "sync_session_id": sync_session_id,
                        "success_count": success_count,
                        "fail_count": fail_count,
                        "total_items": sync_session.total_items,
                    },
                )

            self._apply_status(sync_session, status, status_message)
            sync_session.success_count = success_count
            sync_session.fail_count = fail_count
            await db.commit()

        logger.info(
            f"Sync session {sync_session_id} {status.value}: "
            f"{success_count} succeeded, {fail_count} failed of {sync_session.total_items}"
        )
        await self._broadcast(sync_session)
        return sync_session

    # --------------------------------------------------
    # Item outcomes
    # --------------------------------------------------

    async def record_scrape_outcome(
        self,
        sync_session_id: str,
        scraped_ids: Sequence[int],
        failures: Dict[int, str],
    ) -> None:
        """
        Batched write of one scrape pass.

        Only pending items move; an item already failed is never promoted
        to scraped.
        """
        now = utcnow()
        async with self.session_factory() as db:
            if scraped_ids:
                await db.execute(
                    update(SyncSessionItem)
                    .where(
                        SyncSessionItem.sync_session_id == sync_session_id,
                        SyncSessionItem.item_external_id.in_(list(scraped_ids)),
                        SyncSessionItem.status == SyncSessionItemStatus.PENDING,
                    )
                    .values(status=SyncSessionItemStatus.SCRAPED, error_reason=None, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
            if failures:
                reason = case(
                    {external_id: text for external_id, text in failures.items()},
                    value=SyncSessionItem.item_external_id,
                    else_="Scrape failed",
                )
                await db.execute(
                    update(SyncSessionItem)
                    .where(
                        SyncSessionItem.sync_session_id == sync_session_id,
                        SyncSessionItem.item_external_id.in_(list(failures)),
                        SyncSessionItem.status == SyncSessionItemStatus.PENDING,
                    )
                    .values(status=SyncSessionItemStatus.FAILED, error_reason=reason, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
            await db.commit()

        logger.info(
            f"Sync session {sync_session_id}: {len(scraped_ids)} items scraped, {len(failures)} failed"
        )

    async def demote_scraped(
        self,
        sync_session_id: str,
        external_ids: Iterable[int],
        error_reason: str,
    ) -> int:
        """scraped -> failed for items whose rows were rolled back. Returns rows changed."""
        ids = list(external_ids)
        if not ids:
            return 0

        async with self.session_factory() as db:
            result = await db.execute(
                update(SyncSessionItem)
                .where(
                    SyncSessionItem.sync_session_id == sync_session_id,
                    SyncSessionItem.item_external_id.in_(ids),
                    SyncSessionItem.status == SyncSessionItemStatus.SCRAPED,
                )
                .values(status=SyncSessionItemStatus.FAILED, error_reason=error_reason, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await db.commit()

        logger.warning(f"Sync session {sync_session_id}: demoted {result.rowcount} scraped items to failed")
        return result.rowcount

    # --------------------------------------------------
    # Retry
    # --------------------------------------------------

    async def reset_for_retry(self, sync_session_id: str) -> List[SyncSessionItem]:
        """
        Put the failed items of a partial/failed session back to pending.

        Scraped items are left alone. Returns the reset items.

        Raises:
            RetryNotAllowedError: wrong status, fail_count of 0, or no failed items
        """
        async with self.session_factory() as db:
            sync_session = await self._load(db, sync_session_id)
            context = {
                "sync_session_id": sync_session_id,
                "status": sync_session.status.value,
                "fail_count": sync_session.fail_count,
            }

            if sync_session.status not in RETRYABLE_SESSION_STATUSES or sync_session.fail_count <= 0:
                raise RetryNotAllowedError("Sync session is not eligible for retry", context=context)

            result = await db.execute(
                select(SyncSessionItem)
                .where(
                    SyncSessionItem.sync_session_id == sync_session_id,
                    SyncSessionItem.status == SyncSessionItemStatus.FAILED,
                )
                .order_by(SyncSessionItem.created_at, SyncSessionItem.item_external_id)
            )
            failed_items = list(result.scalars().all())
            if not failed_items:
                raise RetryNotAllowedError("Sync session has no failed items", context=context)

            for item in failed_items:
                item.status = SyncSessionItemStatus.PENDING
                item.error_reason = None
                item.retry_count = item.retry_count + 1

            self._apply_status(
                sync_session,
                SyncSessionStatus.PENDING,
                f"Retrying {len(failed_items)} failed items",
            )
            sync_session.fail_count = 0
            await db.commit()

        logger.info(f"Sync session {sync_session_id}: reset {len(failed_items)} failed items for retry")
        await self._broadcast(sync_session)
        return failed_items

    async def undo_retry_reset(
        self,
        sync_session_id: str,
        previous: SyncSession,
        error_reasons: Dict[int, Optional[str]],
    ) -> SyncSession:
        """
        Put a session reset by `reset_for_retry` back the way it was.

        Used when the retry job never made it onto the queue. `previous` is
        the session as loaded before the reset and `error_reasons` maps each
        reset item to its old failure reason.

        Raises:
            StatusTransitionError: the session is no longer pending
        """
        async with self.session_factory() as db:
            sync_session = await self._load(db, sync_session_id)
            if sync_session.status != SyncSessionStatus.PENDING:
                raise StatusTransitionError(
                    f"Cannot undo retry of sync session in {SyncSessionStatus(sync_session.status).value}",
                    context={"sync_session_id": sync_session_id},
                )

            result = await db.execute(
                select(SyncSessionItem).where(
                    SyncSessionItem.sync_session_id == sync_session_id,
                    SyncSessionItem.status == SyncSessionItemStatus.PENDING,
                    SyncSessionItem.item_external_id.in_(list(error_reasons)),
                )
            )
            for item in result.scalars().all():
                item.status = SyncSessionItemStatus.FAILED
                item.error_reason = error_reasons[item.item_external_id]
                item.retry_count = max(item.retry_count - 1, 0)

            sync_session.status = previous.status
            sync_session.status_message = previous.status_message
            sync_session.fail_count = previous.fail_count
            sync_session.completed_at = previous.completed_at
            await db.commit()

        logger.warning(f"Sync session {sync_session_id}: retry undone, back to {SyncSessionStatus(previous.status).value}")
        await self._broadcast(sync_session)
        return sync_session

    # --------------------------------------------------
    # Helpers
    # --------------------------------------------------

    async def _load(self, db, sync_session_id: str) -> SyncSession:
        sync_session = await db.get(SyncSession, sync_session_id)
        if sync_session is None:
            raise SessionNotFoundError(
                f"Sync session {sync_session_id} not found",
                context={"sync_session_id": sync_session_id},
            )
        return sync_session

    def _apply_status(self, sync_session: SyncSession, status: SyncSessionStatus, status_message: str) -> None:
        current = SyncSessionStatus(sync_session.status)
        status = SyncSessionStatus(status)
        if status not in ALLOWED_SESSION_TRANSITIONS[current]:
            raise StatusTransitionError(
                f"Cannot move sync session from {current.value} to {status.value}",
                context={"sync_session_id": sync_session.id},
            )

        sync_session.status = status
        sync_session.status_message = status_message
        sync_session.completed_at = utcnow() if status in TERMINAL_SESSION_STATUSES else None

    async def _broadcast(self, sync_session: SyncSession) -> None:
        status = SyncSessionStatus(sync_session.status)
        await self.broadcaster.publish(
            sync_session.job_id,
            sync_session.status_message,
            finished=status in TERMINAL_SESSION_STATUSES,
            session_status=status,
        )
