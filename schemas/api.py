"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field
from typing import Optional, Dict, Any
from datetime import datetime
from models.base import SyncPhase


# ============================================================================
# Health Check Schemas
# ============================================================================

class SyncStatusInfo(BaseModel):
    """Sync run status as recorded in the control-state store"""
    phase: SyncPhase = SyncPhase.IDLE
    watermark: Optional[str] = None
    run_started_at: Optional[datetime] = None
    run_finished_at: Optional[datetime] = None
    run_error: Optional[str] = None
    discovery_error: Optional[Dict[str, Any]] = None
    pending_keys: Dict[str, int] = Field(default_factory=dict)

    class Config:
        use_enum_values = True


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Overall system status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    database_connected: bool
    sync: Optional[SyncStatusInfo] = None

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "timestamp": "2024-01-15T10:30:00Z",
                "database_connected": True,
                "sync": {
                    "phase": "finished",
                    "watermark": "2024-01-14",
                    "run_started_at": "2024-01-15T03:00:00Z",
                    "run_finished_at": "2024-01-15T03:42:10Z",
                    "run_error": None,
                    "discovery_error": None,
                    "pending_keys": {"author": 0, "work": 0, "edition": 0}
                }
            }
        }


# ============================================================================
# Task Trigger Schemas
# ============================================================================

class TaskTriggerResponse(BaseModel):
    """Response for the internal manual trigger route"""
    task: str
    scheduled: bool
    next_run_time: Optional[datetime] = None
