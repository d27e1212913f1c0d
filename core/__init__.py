"""
Core utilities and configuration for the figure sync worker.

This package provides foundational components used throughout the pipeline:

Modules:
    config: Application configuration and environment variable management
    database: Engine and session factory construction
    clients: HTTP, Redis and S3 client construction
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import settings
    from core.database import build_engine, build_session_factory
    from core.clients import build_http_client, build_redis_client, build_s3_client
    from core.logging import setup_logging

Example:
    setup_logging()

    engine = build_engine()
    session_factory = build_session_factory(engine)
    async with session_factory() as session:
        ...
"""

from core.config import settings
from core.database import build_engine, build_session_factory
from core.clients import build_http_client, build_redis_client, build_s3_client
from core.logging import setup_logging
from core.exceptions import (
    SyncException,
    ScrapeError,
    FetchError,
    ParseError,
    InvalidCategoryError,
    ImageRehostError,
    JobPayloadError,
    PersistenceError,
    StatusTransitionError,
    SessionNotFoundError,
    RetryNotAllowedError,
    QueueError,
    RetryableError,
    NonRetryableError,
)

__all__ = [
    "settings",
    "build_engine",
    "build_session_factory",
    "build_http_client",
    "build_redis_client",
    "build_s3_client",
    "setup_logging",
    # Exceptions
    "SyncException",
    "ScrapeError",
    "FetchError",
    "ParseError",
    "InvalidCategoryError",
    "ImageRehostError",
    "JobPayloadError",
    "PersistenceError",
    "StatusTransitionError",
    "SessionNotFoundError",
    "RetryNotAllowedError",
    "QueueError",
    "RetryableError",
    "NonRetryableError",
]
