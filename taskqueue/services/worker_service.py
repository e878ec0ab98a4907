"""Worker registry and heartbeat tracking."""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from taskqueue.database import utcnow
from taskqueue.models.worker import Worker, WorkerStatus

logger = logging.getLogger(__name__)


class WorkerService:
    """Register workers, record heartbeats and compute liveness."""

    def __init__(self, db: Session):
        self.db = db

    def register_or_reactivate(
        self,
        worker_id: str,
        host_address: Optional[str] = None,
        port: int = 0,
        owner_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Worker:
        """
        Register a worker, or reactivate it if the id is already known.

        Re-registration overwrites address, port and owner, marks the worker
        Active and refreshes its heartbeat. It never creates a second record.
        """
        now = now or utcnow()
        worker = self.find_by_worker_id(worker_id)

        if worker is None:
            worker = Worker(
                worker_id=worker_id,
                status=WorkerStatus.ACTIVE.value,
                host_address=host_address,
                port=port,
                registered_at=now,
                last_heartbeat=now,
                owner_id=owner_id,
            )
            self.db.add(worker)
            try:
                self.db.commit()
            except IntegrityError:
                # Concurrent registration of the same id; fall through to the update path
                self.db.rollback()
                worker = self.find_by_worker_id(worker_id)
            else:
                self.db.refresh(worker)
                logger.info(f"Worker {worker_id} registered")
                return worker

        worker.status = WorkerStatus.ACTIVE.value
        worker.host_address = host_address
        worker.port = port
        worker.owner_id = owner_id
        if worker.last_heartbeat is None or worker.last_heartbeat < now:
            worker.last_heartbeat = now
        self.db.commit()
        self.db.refresh(worker)
        logger.info(f"Worker {worker_id} reactivated")
        return worker

    def heartbeat(self, worker_id: str, now: Optional[datetime] = None) -> bool:
        """
        Record a heartbeat.

        Returns:
            False if the worker is not registered, True otherwise
        """
        now = now or utcnow()
        worker = self.find_by_worker_id(worker_id)
        if worker is None:
            return False

        # last_heartbeat only moves forward
        self.db.query(Worker).filter(
            Worker.id == worker.id,
            or_(Worker.last_heartbeat.is_(None), Worker.last_heartbeat < now),
        ).update({Worker.last_heartbeat: now}, synchronize_session=False)
        self.db.query(Worker).filter(Worker.id == worker.id).update(
            {Worker.status: WorkerStatus.ACTIVE.value}, synchronize_session=False
        )
        self.db.commit()
        return True

    def list_active_workers(
        self, liveness_window: timedelta, now: Optional[datetime] = None
    ) -> List[Worker]:
        """
        Return live workers after sweeping lapsed ones to Inactive.

        Any Active worker whose last heartbeat is older than
        now - liveness_window is marked Inactive before the read, so the
        result is never staler than the caller's window.
        """
        cutoff = (now or utcnow()) - liveness_window

        swept = (
            self.db.query(Worker)
            .filter(
                Worker.status == WorkerStatus.ACTIVE.value,
                or_(Worker.last_heartbeat.is_(None), Worker.last_heartbeat < cutoff),
            )
            .update({Worker.status: WorkerStatus.INACTIVE.value}, synchronize_session=False)
        )
        if swept:
            self.db.commit()
            self.db.expire_all()
            logger.info(f"Marked {swept} workers inactive after missed heartbeats")

        return (
            self.db.query(Worker)
            .filter(
                Worker.status == WorkerStatus.ACTIVE.value,
                Worker.last_heartbeat >= cutoff,
            )
            .order_by(Worker.worker_id)
            .all()
        )

    def increment_processed(self, worker_id: str) -> None:
        """Bump the processed counter. Unknown workers are ignored."""
        self._increment(worker_id, Worker.tasks_processed)

    def increment_failed(self, worker_id: str) -> None:
        """Bump the failed counter. Unknown workers are ignored."""
        self._increment(worker_id, Worker.tasks_failed)

    def _increment(self, worker_id: str, counter) -> None:
        updated = (
            self.db.query(Worker)
            .filter(Worker.worker_id == worker_id)
            .update({counter: counter + 1}, synchronize_session=False)
        )
        if updated:
            self.db.commit()
        else:
            self.db.rollback()

    def find_by_worker_id(self, worker_id: str) -> Optional[Worker]:
        return self.db.query(Worker).filter(Worker.worker_id == worker_id).first()

    def find_by_id(self, worker_ref: int) -> Optional[Worker]:
        return self.db.query(Worker).filter(Worker.id == worker_ref).first()
