"""Worker-related Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from taskqueue.models.worker import WorkerStatus


class WorkerRegistration(BaseModel):
    """Schema for registering or reactivating a worker."""

    worker_id: str = Field(..., min_length=1, max_length=100)
    host_address: Optional[str] = Field(None, max_length=255)
    port: int = Field(0, ge=0, le=65535)


class WorkerInfo(BaseModel):
    """Worker summary returned by the API."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    worker_id: str
    status: WorkerStatus
    host_address: Optional[str] = None
    port: int
    registered_at: datetime
    last_heartbeat: Optional[datetime] = None
    tasks_processed: int
    tasks_failed: int


class HeartbeatResponse(BaseModel):
    message: str
