"""Stale task reclaimer: periodic detection and reassignment of abandoned tasks."""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from taskqueue.config import settings
from taskqueue.database import SessionLocal
from taskqueue.services.task_service import ReclaimSummary, TaskService

logger = logging.getLogger(__name__)


class StaleTaskReclaimer:
    """
    Background loop that reclaims tasks stuck in Processing.

    Staleness is inferred only from how long the current attempt has been
    running. Worker heartbeats are not consulted, since a worker can keep
    heartbeating while its processing thread is wedged.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        task_timeout: Optional[timedelta] = None,
        interval_seconds: Optional[float] = None,
    ):
        """Initialize the reclaimer from settings unless overridden."""
        self.session_factory = session_factory
        self.task_timeout = task_timeout or timedelta(minutes=settings.TASK_TIMEOUT_MINUTES)
        self.interval_seconds = (
            settings.STALE_SCAN_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        )

    def run_cycle(self, now: Optional[datetime] = None) -> ReclaimSummary:
        """Run a single scan-and-reassign pass."""
        db = self.session_factory()
        try:
            return TaskService(db).reassign_stale_tasks(self.task_timeout, now=now)
        finally:
            db.close()

    def run(self, stop_event: threading.Event) -> None:
        """
        Run cycles on a fixed interval until stop_event is set.

        A failing cycle is logged and the loop carries on with the next one.
        """
        logger.info(
            f"Stale task reclaimer started (timeout: {self.task_timeout}, "
            f"interval: {self.interval_seconds}s)"
        )

        while not stop_event.is_set():
            try:
                self.run_cycle()
            except Exception as e:
                logger.error(f"Error in stale task reclaimer: {e}", exc_info=True)

            stop_event.wait(self.interval_seconds)

        logger.info("Stale task reclaimer stopped")
