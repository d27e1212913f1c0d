"""
Pydantic schemas for API request/response models
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from models.base import SyncSessionItemStatus, SyncSessionStatus, SyncType


class APIModel(BaseModel):
    """camelCase on the wire, matching the job payloads"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )


# ============================================================================
# Health Check Schemas
# ============================================================================

class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    database_connected: bool
    redis_connected: bool
    queued_jobs: Optional[int] = None

    @model_validator(mode="after")
    def determine_status(self):
        """Database down is fatal; Redis down only stops new work"""
        if not self.database_connected:
            self.status = "unhealthy"
        elif not self.redis_connected:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "redis_connected": True,
                "queued_jobs": 2,
            }
        }
    )


# ============================================================================
# Sync Schemas
# ============================================================================

class JobStatusResponse(APIModel):
    """Live status of one job, as polled by the client"""
    status: str
    finished: bool
    created_at: Optional[str] = None
    terminal_state: Optional[str] = None


class SyncSessionItemResponse(APIModel):
    item_external_id: int
    status: SyncSessionItemStatus
    error_reason: Optional[str] = None
    retry_count: int
    item_metadata: List[Dict[str, Any]] = Field(default_factory=list)
    updated_at: datetime


class SyncSessionResponse(APIModel):
    id: str
    user_id: str
    sync_type: SyncType
    status: SyncSessionStatus
    status_message: str
    total_items: int
    success_count: int
    fail_count: int
    job_id: Optional[str] = None
    order_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None
    items: List[SyncSessionItemResponse] = Field(default_factory=list)


class SyncSubmissionResponse(APIModel):
    sync_session_id: str
    job_id: str
    item_count: int


class RetryResponse(APIModel):
    sync_session_id: str
    item_count: int = Field(..., description="Items put back on the queue")
