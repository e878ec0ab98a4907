"""Worker model."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String

from taskqueue.database import Base, utcnow


class WorkerStatus(str, enum.Enum):
    """Stored worker status. Liveness itself is derived from last_heartbeat."""

    ACTIVE = "Active"
    INACTIVE = "Inactive"
    FAILED = "Failed"  # Reserved for operators


class Worker(Base):
    """A registered worker node."""

    __tablename__ = "workers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    worker_id = Column(String(100), nullable=False, unique=True)
    status = Column(String(50), nullable=False, default=WorkerStatus.INACTIVE.value)
    host_address = Column(String(255))
    port = Column(Integer, nullable=False, default=0)
    registered_at = Column(DateTime, nullable=False, default=utcnow)
    last_heartbeat = Column(DateTime)
    tasks_processed = Column(Integer, nullable=False, default=0)
    tasks_failed = Column(Integer, nullable=False, default=0)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))

    __table_args__ = (
        Index("idx_workers_status_heartbeat", "status", "last_heartbeat"),
    )
