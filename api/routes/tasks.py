"""
Internal task routes (manual sync trigger)
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status
from api.dependencies import get_scheduler
from core.config import settings
from ingestion.scheduler import JOB_ID, SyncScheduler
from schemas.api import TaskTriggerResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get(
    "/update",
    response_model=TaskTriggerResponse,
    status_code=status.HTTP_202_ACCEPTED
)
async def trigger_update(request: Request, scheduler: SyncScheduler = Depends(get_scheduler)):
    """
    Start a sync run now.

    Only callable from the allow-listed hosts (loopback by default).
    A run already in progress is not duplicated.
    """
    client_host = request.client.host if request.client else None

    if client_host not in settings.TASK_TRIGGER_ALLOWED_HOSTS:
        logger.warning(f"Rejected sync trigger from {client_host}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")

    next_run_time = scheduler.trigger_now()

    return TaskTriggerResponse(
        task=JOB_ID,
        scheduled=next_run_time is not None,
        next_run_time=next_run_time,
    )
