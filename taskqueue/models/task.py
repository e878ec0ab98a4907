"""Task model and status state machine."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text

from taskqueue.database import Base, utcnow


class TaskStatus(str, enum.Enum):
    """Closed set of task statuses."""

    PENDING = "Pending"
    PROCESSING = "Processing"
    COMPLETED = "Completed"
    FAILED = "Failed"
    REASSIGNED = "Reassigned"


# Allowed status changes, enforced by TaskService.update_status.
# Completed and Failed are terminal.
ALLOWED_TRANSITIONS = {
    TaskStatus.PENDING: {TaskStatus.PROCESSING, TaskStatus.FAILED},
    TaskStatus.PROCESSING: {
        TaskStatus.PROCESSING,
        TaskStatus.COMPLETED,
        TaskStatus.FAILED,
        TaskStatus.REASSIGNED,
    },
    TaskStatus.REASSIGNED: {TaskStatus.PROCESSING, TaskStatus.COMPLETED, TaskStatus.FAILED},
    TaskStatus.FAILED: set(),
    TaskStatus.COMPLETED: set(),
}

DEFAULT_TASK_TYPE = "Default"
RETRIES_EXHAUSTED_MESSAGE = "Task failed after maximum retries"


def can_transition(current: TaskStatus, requested: TaskStatus) -> bool:
    """Return True if the transition table allows current -> requested."""
    return requested in ALLOWED_TRANSITIONS[current]


class Task(Base):
    """A unit of work tracked through its status lifecycle."""

    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_id = Column(String(100), nullable=False, unique=True)
    status = Column(String(50), nullable=False, default=TaskStatus.PENDING.value)
    task_type = Column(String(50), nullable=False, default=DEFAULT_TASK_TYPE)
    priority = Column(Integer, nullable=False, default=0)  # Informational only
    payload = Column(Text, nullable=False, default="")
    created_at = Column(DateTime, nullable=False, default=utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    result = Column(Text)
    error_message = Column(Text)
    retry_count = Column(Integer, nullable=False, default=0)
    max_retries = Column(Integer, nullable=False, default=3)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    worker_ref = Column(Integer, ForeignKey("workers.id", ondelete="SET NULL"))
    stream_entry_id = Column(String(100))

    __table_args__ = (
        Index("idx_tasks_status_started_at", "status", "started_at"),
        Index("idx_tasks_owner_created_at", "owner_id", "created_at"),
        Index("idx_tasks_worker_ref", "worker_ref"),
    )
