"""
Health check endpoint with database and queue status
"""

import logging

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_db, get_services
from pipeline.services import SyncServices
from schemas.api import HealthCheckResponse

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(
    request: Request,
    db: AsyncSession = Depends(get_db),
    services: SyncServices = Depends(get_services),
):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Redis connectivity status and waiting job count
    """
    request_id = getattr(request.state, "request_id", "-")

    db_connected = False
    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except SQLAlchemyError as e:
        logger.error(f"[{request_id}] Database connection failed: {str(e)}")

    redis_connected = False
    queued_jobs = None
    try:
        await services.redis_client.ping()
        queued_jobs = await services.queue.waiting_count()
        redis_connected = True
    except redis.RedisError as e:
        logger.error(f"[{request_id}] Redis connection failed: {str(e)}")

    return HealthCheckResponse(
        database_connected=db_connected,
        redis_connected=redis_connected,
        queued_jobs=queued_jobs,
    )
