"""
Health check endpoint with database and sync status
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from api.dependencies import get_db
from schemas.api import HealthCheckResponse, SyncStatusInfo
from ingestion.control_state import ControlStateStore, StoreKey
from ingestion.keys import PROCESSING_ORDER
from models.base import SyncPhase
from datetime import datetime
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(db: AsyncSession = Depends(get_db)):
    """
    Health check endpoint.

    Returns:
    - Database connectivity status
    - Sync run status from the control-state store
    """

    db_connected = False

    try:
        await db.execute(text("SELECT 1"))
        db_connected = True
    except Exception as e:
        logger.error(f"Database connection failed: {str(e)}")

    if not db_connected:
        return HealthCheckResponse(
            status="unhealthy",
            timestamp=datetime.utcnow(),
            database_connected=False,
        )

    sync = None
    try:
        store = ControlStateStore(db)
        sync = SyncStatusInfo(
            phase=await store.get(StoreKey.RUN_PHASE, SyncPhase.IDLE.value),
            watermark=await store.get(StoreKey.WATERMARK),
            run_started_at=await store.get(StoreKey.RUN_STARTED_AT),
            run_finished_at=await store.get(StoreKey.RUN_FINISHED_AT),
            run_error=await store.get(StoreKey.RUN_ERROR),
            discovery_error=await store.get(StoreKey.DISCOVERY_ERROR),
            pending_keys={
                kind.value: len(await store.get_queue(kind)) for kind in PROCESSING_ORDER
            },
        )
    except Exception as e:
        logger.error(f"Failed to read sync status: {str(e)}")

    # Last run failed or status unreadable
    degraded = sync is None or sync.phase == SyncPhase.FAILED.value or sync.run_error is not None

    return HealthCheckResponse(
        status="degraded" if degraded else "healthy",
        timestamp=datetime.utcnow(),
        database_connected=True,
        sync=sync,
    )
