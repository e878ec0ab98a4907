"""SQLAlchemy ORM models."""

from taskqueue.models.task import Task, TaskStatus
from taskqueue.models.user import User, UserRole
from taskqueue.models.worker import Worker, WorkerStatus

__all__ = [
    "Task",
    "TaskStatus",
    "User",
    "UserRole",
    "Worker",
    "WorkerStatus",
]
