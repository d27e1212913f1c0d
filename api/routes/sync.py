"""
Sync endpoints: intake, live job status, session detail and retry
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status

from api.dependencies import get_services
from core.exceptions import (
    JobPayloadError,
    QueueError,
    RetryNotAllowedError,
    SessionNotFoundError,
)
from models.base import SyncSessionStatus
from pipeline.services import SyncServices
from pipeline.status.broadcaster import terminal_state_for
from schemas.api import (
    JobStatusResponse,
    RetryResponse,
    SyncSessionResponse,
    SyncSubmissionResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/sync", tags=["Sync"])


@router.post("/jobs", response_model=SyncSubmissionResponse, status_code=status.HTTP_202_ACCEPTED)
async def submit_sync(
    request: Request,
    body: Dict[str, Any] = Body(...),
    services: SyncServices = Depends(get_services),
):
    """
    Create a sync session and queue its job.

    The body is a csv, order or collection job payload without `syncSessionId`.
    """
    request_id = getattr(request.state, "request_id", "-")
    try:
        submission = await services.intake.submit(body)
    except JobPayloadError as e:
        logger.warning(f"[{request_id}] Rejected sync request: {e.message}")
        raise HTTPException(status_code=422, detail=e.context.get("errors", e.message))
    except QueueError as e:
        logger.error(f"[{request_id}] {e}")
        raise HTTPException(status_code=503, detail="Sync queue unavailable")

    logger.info(f"[{request_id}] POST /sync/jobs - session {submission.sync_session_id}, job {submission.job_id}")
    return SyncSubmissionResponse.model_validate(submission)


@router.get("/jobs/{job_id}/status", response_model=JobStatusResponse)
async def get_job_status(job_id: str, services: SyncServices = Depends(get_services)):
    """
    Live status of a job.

    Served from the status key while it lives; afterwards it is rebuilt
    from the session row that ran the job.
    """
    cached = await services.broadcaster.read(job_id)
    if cached is not None:
        return JobStatusResponse.model_validate(cached)

    sync_session = await services.status_store.find_by_job_id(job_id)
    if sync_session is None:
        raise HTTPException(status_code=404, detail=f"Job {job_id} not found")

    session_status = SyncSessionStatus(sync_session.status)
    return JobStatusResponse(
        status=sync_session.status_message,
        finished=session_status.is_terminal,
        created_at=sync_session.updated_at.isoformat(),
        terminal_state=terminal_state_for(session_status) if session_status.is_terminal else None,
    )


@router.get("/sessions/{sync_session_id}", response_model=SyncSessionResponse)
async def get_sync_session(sync_session_id: str, services: SyncServices = Depends(get_services)):
    try:
        sync_session = await services.status_store.get_session_with_items(sync_session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    return SyncSessionResponse.model_validate(sync_session)


@router.post("/sessions/{sync_session_id}/retry", response_model=RetryResponse, status_code=status.HTTP_202_ACCEPTED)
async def retry_sync_session(
    request: Request,
    sync_session_id: str,
    services: SyncServices = Depends(get_services),
):
    """Re-queue the failed items of a partial or failed session"""
    request_id = getattr(request.state, "request_id", "-")
    try:
        item_count = await services.retry.retry(sync_session_id)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except RetryNotAllowedError as e:
        raise HTTPException(status_code=409, detail=e.message)
    except QueueError as e:
        logger.error(f"[{request_id}] {e}")
        raise HTTPException(status_code=503, detail="Sync queue unavailable")

    logger.info(f"[{request_id}] POST /sync/sessions/{sync_session_id}/retry - {item_count} items")
    return RetryResponse(sync_session_id=sync_session_id, item_count=item_count)
