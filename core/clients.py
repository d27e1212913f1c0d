"""
Construction of the outbound clients used by the pipeline.

Each process builds these once at startup and hands them to the components
that need them. Nothing here is cached at module level.
"""

from typing import Optional

import boto3
import httpx
import redis.asyncio as redis

from core.config import settings


def build_http_client(
    proxy: Optional[str] = None,
    timeout: Optional[float] = None,
) -> httpx.AsyncClient:
    """
    HTTP client for the catalog upstream.

    TLS verification is disabled for this client only; the catalog site is
    reached through proxies that re-sign certificates.
    """
    return httpx.AsyncClient(
        proxy=proxy if proxy is not None else settings.HTTP_PROXY,
        verify=False,
        timeout=timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS,
        follow_redirects=True,
    )


def build_redis_client(url: Optional[str] = None) -> redis.Redis:
    """Redis client used for the job queue and the live status keys."""
    return redis.from_url(url or settings.REDIS_URL, decode_responses=True)


def build_s3_client(region: Optional[str] = None):
    """boto3 S3 client for re-hosted item images."""
    return boto3.client("s3", region_name=region or settings.AWS_BUCKET_REGION)
