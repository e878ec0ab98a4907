"""Task-related Pydantic schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from taskqueue.models.task import DEFAULT_TASK_TYPE, TaskStatus


class TaskCreate(BaseModel):
    """Schema for submitting a new task."""

    task_id: Optional[str] = Field(None, max_length=100)  # Generated when omitted
    task_type: str = Field(DEFAULT_TASK_TYPE, max_length=50)
    priority: int = 0
    payload: str = "{}"
    max_retries: Optional[int] = Field(None, ge=0)


class TaskStatusUpdate(BaseModel):
    """Status report sent by a worker."""

    status: TaskStatus
    result: Optional[str] = None
    error_message: Optional[str] = None
    worker_ref: Optional[int] = None  # Registry row id of the reporting worker


class TaskInfo(BaseModel):
    """Task summary returned by the API."""

    id: int
    task_id: str
    status: TaskStatus
    task_type: str
    priority: int
    payload: str
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    result: Optional[str] = None
    error_message: Optional[str] = None
    retry_count: int
    max_retries: int
    worker_id: Optional[str] = None
    stream_entry_id: Optional[str] = None
