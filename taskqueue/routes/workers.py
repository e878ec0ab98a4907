"""Worker routes."""

import logging
from datetime import timedelta
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from taskqueue.config import settings
from taskqueue.database import get_db
from taskqueue.models.user import User
from taskqueue.schemas.worker import HeartbeatResponse, WorkerInfo, WorkerRegistration
from taskqueue.services.auth import get_current_user
from taskqueue.services.worker_service import WorkerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workers", tags=["workers"])


@router.post("/register", response_model=WorkerInfo)
def register_worker(
    data: WorkerRegistration,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Register a worker, or reactivate it if already known."""
    return WorkerService(db).register_or_reactivate(
        worker_id=data.worker_id,
        host_address=data.host_address,
        port=data.port,
        owner_id=user.id,
    )


@router.get("/heartbeat/{worker_id}", response_model=HeartbeatResponse)
def heartbeat(worker_id: str, db: Session = Depends(get_db)):
    """Record a heartbeat for a registered worker."""
    if not WorkerService(db).heartbeat(worker_id):
        raise HTTPException(status_code=404, detail="Worker not found")
    return HeartbeatResponse(message="Heartbeat updated")


@router.get("/active", response_model=List[WorkerInfo])
def list_active_workers(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List live workers; lapsed workers are marked Inactive first."""
    window = timedelta(seconds=settings.WORKER_LIVENESS_WINDOW_SECONDS)
    return WorkerService(db).list_active_workers(window)
