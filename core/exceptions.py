"""
Custom exceptions for the sync pipeline with structured error context.

Expected per-item outcomes (one item failing to scrape, a finalize
transaction rolling back) are reported through result objects by the
pipeline components. The exceptions below are what those components raise
internally and what surfaces when something is genuinely fatal.

Exception Hierarchy:
    SyncException (base)
    ├── ScrapeError
    │   ├── FetchError
    │   ├── ParseError
    │   │   └── InvalidCategoryError
    │   └── ImageRehostError
    ├── JobPayloadError
    ├── PersistenceError
    ├── StatusTransitionError
    ├── SessionNotFoundError
    ├── RetryNotAllowedError
    ├── QueueError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class SyncException(Exception):
    """
    Base exception for all sync-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (item id, session id, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(SyncException):
    """
    Mixin for errors the scraper retries with backoff.

    Use this for transient errors like:
    - Network timeouts
    - Upstream 5xx responses
    - Object storage hiccups
    """
    pass


class NonRetryableError(SyncException):
    """
    Mixin for errors that must not be retried.

    Use this for permanent errors like:
    - Malformed job payloads
    - Invalid session state for the requested operation
    """
    pass


# ============================================================================
# Scrape Errors
# ============================================================================

class ScrapeError(SyncException):
    """Base exception for a single catalog item failing to scrape."""
    pass


class FetchError(RetryableError, ScrapeError):
    """
    Exception raised when the item detail page cannot be retrieved.

    Context should include:
        - external_id: Catalog item id
        - url: URL that was requested
        - status_code: HTTP status code (if applicable)
    """
    pass


class ParseError(ScrapeError):
    """
    Exception raised when the detail page does not have the expected shape.

    Context should include:
        - external_id: Catalog item id
        - field: Label of the data field being parsed (if applicable)
    """
    pass


class InvalidCategoryError(ParseError):
    """Category is missing or not one of the known catalog categories."""
    pass


class ImageRehostError(RetryableError, ScrapeError):
    """
    Exception raised when the primary image cannot be copied to storage.

    Context should include:
        - image_url: Source image URL
        - content_type: Response content type (if applicable)
        - status_code: HTTP or storage status code (if applicable)
    """
    pass


# ============================================================================
# Job / Session Errors
# ============================================================================

class JobPayloadError(NonRetryableError):
    """
    Job data failed validation. Fatal for the job.

    Context should include:
        - job_id: Queue job id
        - errors: Validation error details
    """
    pass


class PersistenceError(SyncException):
    """
    Exception raised when the finalize transaction fails.

    Context should include:
        - sync_session_id: Owning session
        - sync_type: csv, order or collection
    """
    pass


class StatusTransitionError(NonRetryableError):
    """A session or item was asked to move to a state its current state forbids."""
    pass


class SessionNotFoundError(NonRetryableError):
    """No sync session exists with the given id."""
    pass


class RetryNotAllowedError(NonRetryableError):
    """
    Retry was requested for a session that is not eligible.

    Context should include:
        - sync_session_id: Session id
        - status: Current session status
        - fail_count: Current fail count
    """
    pass


class QueueError(SyncException):
    """Exception raised when the job queue cannot be read or written."""
    pass
