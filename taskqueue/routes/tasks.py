"""Task routes."""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from taskqueue.database import get_db
from taskqueue.errors import (
    DuplicateTaskId,
    InvalidStatusTransition,
    RetriesExhausted,
    TaskNotFound,
    TransientDependencyError,
    WorkerNotFound,
)
from taskqueue.models.task import TaskStatus
from taskqueue.models.user import User
from taskqueue.schemas.message import TaskMessage, encode_task_message
from taskqueue.schemas.task import TaskCreate, TaskInfo, TaskStatusUpdate
from taskqueue.services.auth import get_current_user, owner_scope
from taskqueue.services.stream import TaskStream, get_task_stream
from taskqueue.services.task_service import TaskService
from taskqueue.services.worker_service import WorkerService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.post("", response_model=TaskInfo)
def create_task(
    data: TaskCreate,
    db: Session = Depends(get_db),
    stream: TaskStream = Depends(get_task_stream),
    user: User = Depends(get_current_user),
):
    """
    Record a new Pending task and enqueue its message.

    The row is written before the message so a worker never reads a task the
    registry does not know.
    """
    service = TaskService(db)
    task_id = data.task_id or str(uuid.uuid4())

    try:
        task = service.create_task(
            task_id=task_id,
            payload=data.payload,
            task_type=data.task_type,
            priority=data.priority,
            owner_id=user.id,
            max_retries=data.max_retries,
        )
    except DuplicateTaskId as e:
        raise HTTPException(
            status_code=400, detail={"error": "DuplicateTaskId", "message": str(e)}
        )

    message = TaskMessage(
        task_id=task.task_id,
        task_type=task.task_type,
        payload=task.payload,
        priority=task.priority,
        created_at=task.created_at,
    )
    try:
        entry_id = stream.enqueue(encode_task_message(message))
    except TransientDependencyError as e:
        logger.error(f"Could not enqueue task {task_id}: {e}")
        service.update_status(task_id, TaskStatus.FAILED, error_message="Task could not be enqueued")
        raise HTTPException(status_code=503, detail="Task stream unavailable")

    service.set_stream_entry_id(task_id, entry_id)
    logger.info(f"Enqueued task {task_id} as stream entry {entry_id}")

    return service.describe(service.find_by_task_id(task_id))


@router.post("/status/{task_id}", response_model=TaskInfo)
def update_task_status(
    task_id: str,
    data: TaskStatusUpdate,
    db: Session = Depends(get_db),
):
    """Status report from a worker."""
    service = TaskService(db)

    existing = service.find_by_task_id(task_id)
    if existing is None:
        raise HTTPException(status_code=404, detail="Task not found")
    was_completed = existing.status == TaskStatus.COMPLETED.value

    try:
        task = service.update_status(
            task_id,
            data.status,
            result=data.result,
            error_message=data.error_message,
            worker_ref=data.worker_ref,
        )
    except TaskNotFound:
        raise HTTPException(status_code=404, detail="Task not found")
    except WorkerNotFound as e:
        raise HTTPException(
            status_code=400,
            detail={"error": "WorkerNotFound", "message": str(e), "worker_ref": data.worker_ref},
        )
    except RetriesExhausted as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": "RetriesExhausted",
                "message": str(e),
                "retry_count": e.retry_count,
                "max_retries": e.max_retries,
            },
        )
    except InvalidStatusTransition as e:
        raise HTTPException(
            status_code=409,
            detail={
                "error": "InvalidStatusTransition",
                "message": str(e),
                "current": e.current,
                "requested": e.requested,
            },
        )

    if not was_completed and data.worker_ref is not None:
        _count_outcome(WorkerService(db), data.worker_ref, data.status)

    return service.describe(task)


def _count_outcome(workers: WorkerService, worker_ref: int, status: TaskStatus) -> None:
    if status not in (TaskStatus.COMPLETED, TaskStatus.FAILED):
        return

    worker = workers.find_by_id(worker_ref)
    if worker is None:
        return

    if status == TaskStatus.COMPLETED:
        workers.increment_processed(worker.worker_id)
    else:
        workers.increment_failed(worker.worker_id)


@router.get("", response_model=List[TaskInfo])
def list_tasks(
    status: Optional[TaskStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """List tasks, newest first. Non-admin callers only see their own tasks."""
    return TaskService(db).list_tasks(owner_id=owner_scope(user), status=status, limit=limit)


@router.get("/{task_id}", response_model=TaskInfo)
def get_task(
    task_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Fetch one task."""
    service = TaskService(db)
    task = service.find_by_task_id(task_id)

    scope = owner_scope(user)
    if not task or (scope is not None and task.owner_id != scope):
        raise HTTPException(status_code=404, detail="Task not found")

    return service.describe(task)
