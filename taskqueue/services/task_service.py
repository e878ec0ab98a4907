"""Task registry: durable task records and the task state machine."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskqueue.config import settings
from taskqueue.database import utcnow
from taskqueue.errors import (
    DuplicateTaskId,
    InvalidStatusTransition,
    RetriesExhausted,
    TaskNotFound,
    TransientDependencyError,
    WorkerNotFound,
)
from taskqueue.models.task import (
    DEFAULT_TASK_TYPE,
    RETRIES_EXHAUSTED_MESSAGE,
    Task,
    TaskStatus,
    can_transition,
)
from taskqueue.models.worker import Worker
from taskqueue.schemas.task import TaskInfo

logger = logging.getLogger(__name__)

# Conditional writes lost to a concurrent writer are re-read and retried this many times
MAX_WRITE_ATTEMPTS = 5


@dataclass
class ReclaimSummary:
    """Outcome of one stale-task reclaim pass."""

    reassigned: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.reassigned) + len(self.failed)


def to_task_info(task: Task, worker_id: Optional[str] = None) -> TaskInfo:
    """Convert a task row into its API summary."""
    return TaskInfo(
        id=task.id,
        task_id=task.task_id,
        status=TaskStatus(task.status),
        task_type=task.task_type,
        priority=task.priority,
        payload=task.payload,
        created_at=task.created_at,
        started_at=task.started_at,
        completed_at=task.completed_at,
        result=task.result,
        error_message=task.error_message,
        retry_count=task.retry_count,
        max_retries=task.max_retries,
        worker_id=worker_id,
        stream_entry_id=task.stream_entry_id,
    )


class TaskService:
    """Create, update and query task records."""

    def __init__(self, db: Session):
        self.db = db

    def create_task(
        self,
        task_id: str,
        payload: str,
        task_type: str = DEFAULT_TASK_TYPE,
        priority: int = 0,
        owner_id: Optional[int] = None,
        stream_entry_id: Optional[str] = None,
        max_retries: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Insert a new task in Pending status.

        Raises:
            DuplicateTaskId: If a task with task_id already exists
        """
        if self.find_by_task_id(task_id) is not None:
            raise DuplicateTaskId(task_id)

        task = Task(
            task_id=task_id,
            status=TaskStatus.PENDING.value,
            task_type=task_type or DEFAULT_TASK_TYPE,
            priority=priority,
            payload=payload,
            created_at=now or utcnow(),
            retry_count=0,
            max_retries=settings.MAX_TASK_RETRIES if max_retries is None else max_retries,
            owner_id=owner_id,
            stream_entry_id=stream_entry_id,
        )
        self.db.add(task)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race against a concurrent insert of the same id
            self.db.rollback()
            raise DuplicateTaskId(task_id)

        self.db.refresh(task)
        logger.info(f"Created task {task_id} (type: {task.task_type})")
        return task

    def set_stream_entry_id(self, task_id: str, stream_entry_id: str) -> None:
        """Record the stream entry that carries the task message."""
        updated = (
            self.db.query(Task)
            .filter(Task.task_id == task_id)
            .update({Task.stream_entry_id: stream_entry_id}, synchronize_session=False)
        )
        if updated != 1:
            self.db.rollback()
            raise TaskNotFound(task_id)
        self.db.commit()

    def update_status(
        self,
        task_id: str,
        status: TaskStatus,
        result: Optional[str] = None,
        error_message: Optional[str] = None,
        worker_ref: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Task:
        """
        Apply a status change to a task.

        The write is conditional on the status observed when reading, so a
        concurrent writer (typically the stale task reclaimer) can never be
        silently overwritten. A Completed task is never changed again; further
        reports return it as stored.

        Raises:
            TaskNotFound: If no task has task_id
            InvalidStatusTransition: If the transition table forbids the change
            RetriesExhausted: If Processing is requested after the retry budget is spent
            WorkerNotFound: If worker_ref names no registered worker
        """
        status = TaskStatus(status)

        for _ in range(MAX_WRITE_ATTEMPTS):
            task = self.find_by_task_id(task_id)
            if task is None:
                raise TaskNotFound(task_id)

            current = TaskStatus(task.status)
            if current == TaskStatus.COMPLETED:
                if status != TaskStatus.COMPLETED:
                    logger.warning(f"Ignoring {status.value} report for completed task {task_id}")
                return task

            if worker_ref is not None and not self._worker_exists(worker_ref):
                raise WorkerNotFound(str(worker_ref))

            if not can_transition(current, status):
                raise InvalidStatusTransition(task_id, current.value, status.value)

            if status == TaskStatus.PROCESSING and task.retry_count >= task.max_retries:
                raise RetriesExhausted(task_id, task.retry_count, task.max_retries)

            values = self._transition_values(status, result, error_message, worker_ref, now or utcnow())
            updated = (
                self.db.query(Task)
                .filter(Task.id == task.id, Task.status == current.value)
                .update(values, synchronize_session=False)
            )
            if updated == 1:
                self.db.commit()
                self.db.refresh(task)
                logger.info(f"Task {task_id}: {current.value} -> {status.value}")
                return task

            self.db.rollback()
            logger.info(f"Task {task_id} changed concurrently, re-reading")

        raise TransientDependencyError(f"Could not update task {task_id}: too much write contention")

    def _worker_exists(self, worker_ref: int) -> bool:
        return self.db.query(Worker.id).filter(Worker.id == worker_ref).first() is not None

    @staticmethod
    def _transition_values(
        status: TaskStatus,
        result: Optional[str],
        error_message: Optional[str],
        worker_ref: Optional[int],
        now: datetime,
    ) -> Dict[Any, Any]:
        values: Dict[Any, Any] = {Task.status: status.value}

        if status == TaskStatus.PROCESSING:
            # Only the first Processing report of an attempt sets started_at
            values[Task.started_at] = func.coalesce(Task.started_at, now)
        elif status == TaskStatus.COMPLETED:
            values[Task.completed_at] = now
            values[Task.result] = result
        elif status == TaskStatus.FAILED:
            values[Task.error_message] = error_message
            values[Task.retry_count] = Task.retry_count + 1

        if worker_ref is not None:
            values[Task.worker_ref] = worker_ref

        return values

    def list_tasks(
        self,
        owner_id: Optional[int] = None,
        status: Optional[TaskStatus] = None,
        limit: int = 100,
    ) -> List[TaskInfo]:
        """List task summaries, newest first."""
        query = self.db.query(Task, Worker.worker_id).outerjoin(Worker, Task.worker_ref == Worker.id)

        if owner_id is not None:
            query = query.filter(Task.owner_id == owner_id)
        if status is not None:
            query = query.filter(Task.status == TaskStatus(status).value)

        rows = query.order_by(Task.created_at.desc(), Task.id.desc()).limit(limit).all()
        return [to_task_info(task, worker_id) for task, worker_id in rows]

    def find_by_task_id(self, task_id: str) -> Optional[Task]:
        return self.db.query(Task).filter(Task.task_id == task_id).first()

    def describe(self, task: Task) -> TaskInfo:
        """Build the API summary of a task, resolving its worker reference."""
        worker_id = None
        if task.worker_ref is not None:
            worker_id = (
                self.db.query(Worker.worker_id).filter(Worker.id == task.worker_ref).scalar()
            )
        return to_task_info(task, worker_id)

    def get_stale_tasks(self, timeout: timedelta, now: Optional[datetime] = None) -> List[Task]:
        """Processing tasks whose current attempt started before now - timeout."""
        cutoff = (now or utcnow()) - timeout
        return (
            self.db.query(Task)
            .filter(Task.status == TaskStatus.PROCESSING.value, Task.started_at < cutoff)
            .all()
        )

    def reassign_stale_tasks(self, timeout: timedelta, now: Optional[datetime] = None) -> ReclaimSummary:
        """
        Release stale tasks for another attempt, or fail them once retries run out.

        Every update is fenced on the task still being in the observed
        Processing attempt, so a report that lands between the scan and the
        write (a Completed one in particular) is never overwritten. All
        updates are committed as one batch; an empty stale set writes nothing.

        Args:
            timeout: Maximum time a task may stay in Processing
            now: Reference time, defaults to the current UTC time

        Returns:
            ReclaimSummary with the reassigned and failed task ids
        """
        summary = ReclaimSummary()
        stale_tasks = self.get_stale_tasks(timeout, now)
        if not stale_tasks:
            return summary

        for task in stale_tasks:
            retry_count = task.retry_count + 1
            values: Dict[Any, Any] = {
                Task.status: TaskStatus.REASSIGNED.value,
                Task.retry_count: retry_count,
                Task.worker_ref: None,
                Task.started_at: None,
            }
            if retry_count >= task.max_retries:
                values[Task.status] = TaskStatus.FAILED.value
                values[Task.error_message] = RETRIES_EXHAUSTED_MESSAGE

            updated = (
                self.db.query(Task)
                .filter(
                    Task.id == task.id,
                    Task.status == TaskStatus.PROCESSING.value,
                    Task.started_at == task.started_at,
                )
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                logger.info(f"Task {task.task_id} changed during reclaim, skipping")
                continue

            if values[Task.status] == TaskStatus.FAILED.value:
                summary.failed.append(task.task_id)
            else:
                summary.reassigned.append(task.task_id)

        self.db.commit()
        # Drop stale in-memory state for the rows updated above
        self.db.expire_all()

        if summary.total:
            logger.warning(
                f"Reclaimed {summary.total} stale tasks: "
                f"{len(summary.reassigned)} reassigned, {len(summary.failed)} failed"
            )
        return summary
