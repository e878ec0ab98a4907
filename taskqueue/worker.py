"""Worker node: consumes task messages from the stream and reports to the coordinator."""

import logging
import signal
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

from taskqueue.config import settings
from taskqueue.errors import (
    InvalidStatusTransition,
    MalformedMessage,
    RetriesExhausted,
    TaskNotFound,
    WorkerNotFound,
)
from taskqueue.models.task import TaskStatus
from taskqueue.schemas.message import decode_task_message
from taskqueue.services.coordinator_client import CoordinatorClient
from taskqueue.services.stream import StreamEntry, TaskStream
from taskqueue.services.task_processor import TaskProcessor

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


class Worker:
    """
    Worker process.

    The heartbeat loop runs in its own thread; the messages of each batch are
    processed concurrently on a thread pool. A stream entry is acknowledged
    only after the task's final status was reported, so a crash mid-task
    leaves the entry pending for redelivery.
    """

    def __init__(
        self,
        stream: Optional[TaskStream] = None,
        coordinator: Optional[CoordinatorClient] = None,
        processor: Optional[TaskProcessor] = None,
        worker_id: Optional[str] = None,
    ):
        """Initialize worker from settings unless collaborators are given."""
        self.worker_id = worker_id or settings.WORKER_ID or f"worker-{uuid.uuid4()}"
        self.consumer_name = settings.CONSUMER_NAME or self.worker_id
        self.host_address = settings.WORKER_HOST_ADDRESS
        self.port = settings.WORKER_PORT

        self.stream = stream or TaskStream()
        self.coordinator = coordinator or CoordinatorClient()
        self.processor = processor or TaskProcessor()

        self.batch_size = settings.BATCH_SIZE
        self.block_ms = settings.BLOCK_TIMEOUT_MS
        self.idle_wait = settings.IDLE_WAIT_SECONDS
        self.error_backoff = settings.CONSUME_ERROR_BACKOFF_SECONDS
        self.heartbeat_interval = settings.HEARTBEAT_INTERVAL_SECONDS
        self.heartbeat_retry = settings.HEARTBEAT_RETRY_SECONDS
        self.claim_interval = settings.PENDING_CLAIM_INTERVAL_SECONDS
        self.claim_min_idle_ms = settings.PENDING_CLAIM_MIN_IDLE_MS
        self.result_ttl = settings.RESULT_TTL_SECONDS

        # Registry row id, sent with every status report
        self.worker_ref: Optional[int] = None
        self._last_claim = 0.0

    def run(self, stop_event: threading.Event) -> None:
        """
        Main worker loop.

        Args:
            stop_event: threading.Event that stops the heartbeat and consume loops
        """
        logger.info(f"Worker {self.worker_id} starting...")

        self.register()
        self.init_consumer_group()

        heartbeat_thread = threading.Thread(
            target=self.heartbeat_loop, args=(stop_event,), name="heartbeat", daemon=True
        )
        heartbeat_thread.start()

        self.consume_loop(stop_event)

        heartbeat_thread.join(timeout=self.heartbeat_interval)
        logger.info(f"Worker {self.worker_id} stopped")

    def register(self) -> bool:
        """Register with the coordinator. A failure is logged and processing goes ahead."""
        worker = self.coordinator.register_worker(self.worker_id, self.host_address, self.port)
        if worker is None:
            logger.warning(f"Worker {self.worker_id} is not registered, continuing anyway")
            return False

        self.worker_ref = worker.get("id")
        logger.info(f"Worker {self.worker_id} registered (ref: {self.worker_ref})")
        return True

    def init_consumer_group(self) -> None:
        try:
            if self.stream.ensure_group():
                logger.info(f"Consumer group {self.stream.group_name} initialized")
            else:
                logger.info(f"Consumer group {self.stream.group_name} already exists")
        except Exception as e:
            logger.error(f"Failed to initialize consumer group: {e}")

    def heartbeat_loop(self, stop_event: threading.Event) -> None:
        """Send heartbeats until stopped, retrying sooner after a failure."""
        while not stop_event.is_set():
            try:
                if self.coordinator.send_heartbeat(self.worker_id):
                    delay = self.heartbeat_interval
                else:
                    logger.warning(f"Coordinator does not know worker {self.worker_id}, re-registering")
                    delay = self.heartbeat_interval if self.register() else self.heartbeat_retry
            except Exception as e:
                logger.error(f"Error sending heartbeat: {e}")
                delay = self.heartbeat_retry

            stop_event.wait(delay)

    def consume_loop(self, stop_event: threading.Event) -> None:
        """Read batches and process their messages concurrently until stopped."""
        with ThreadPoolExecutor(max_workers=self.batch_size, thread_name_prefix="task") as executor:
            while not stop_event.is_set():
                try:
                    entries = self.next_batch()

                    if not entries:
                        stop_event.wait(self.idle_wait)
                        continue

                    logger.info(f"Received {len(entries)} tasks from stream")

                    # Wait for the whole batch; in-flight messages finish even on shutdown
                    list(executor.map(self.process_message, entries))

                except Exception as e:
                    logger.error(f"Error processing tasks from stream: {e}", exc_info=True)
                    stop_event.wait(self.error_backoff)

    def next_batch(self) -> List[StreamEntry]:
        """
        Next batch to process.

        Periodically entries left pending by dead consumers are claimed first;
        otherwise new entries are read from the group.
        """
        now = time.monotonic()
        if now - self._last_claim >= self.claim_interval:
            self._last_claim = now
            claimed = self.stream.claim_abandoned(
                self.consumer_name, self.claim_min_idle_ms, self.batch_size
            )
            if claimed:
                logger.info(f"Claimed {len(claimed)} abandoned stream entries")
                return claimed

        return self.stream.read_group(self.consumer_name, self.batch_size, self.block_ms)

    def process_message(self, entry: StreamEntry) -> bool:
        """
        Process one stream entry.

        Returns:
            True if the entry was acknowledged, False if it was left pending
        """
        entry_id, fields = entry
        logger.info(f"Processing message {entry_id}")

        try:
            message = decode_task_message(fields)
        except MalformedMessage as e:
            logger.warning(f"Dropping malformed message {entry_id}: {e}")
            return self.acknowledge(entry_id)

        task_id = message.task_id
        try:
            task = self.coordinator.update_task_status(
                task_id, TaskStatus.PROCESSING, worker_ref=self.worker_ref
            )
            if task.get("status") == TaskStatus.COMPLETED.value:
                logger.info(f"Task {task_id} already completed, skipping")
                return self.acknowledge(entry_id)

            result = self.processor.process(message)

            if result.success:
                logger.info(f"Task {task_id} completed successfully")
                self.store_result(task_id, result.result)
                self.coordinator.update_task_status(
                    task_id, TaskStatus.COMPLETED, result=result.result, worker_ref=self.worker_ref
                )
            else:
                logger.warning(f"Task {task_id} failed: {result.error_message}")
                self.coordinator.update_task_status(
                    task_id,
                    TaskStatus.FAILED,
                    error_message=result.error_message,
                    worker_ref=self.worker_ref,
                )

            return self.acknowledge(entry_id)

        except TaskNotFound:
            logger.warning(f"Dropping message {entry_id}: task {task_id} is unknown to the coordinator")
            return self.acknowledge(entry_id)
        except (InvalidStatusTransition, RetriesExhausted) as e:
            # The task is terminal; redelivery can never change that
            logger.warning(f"Dropping message {entry_id}: {e}")
            return self.acknowledge(entry_id)
        except WorkerNotFound:
            # The registry row behind worker_ref is gone
            logger.warning(f"Coordinator rejected worker ref {self.worker_ref}, re-registering")
            self.register()
            return False
        except Exception as e:
            # Left unacknowledged; the entry stays pending and is claimed again later
            logger.error(f"Error processing message {entry_id}: {e}", exc_info=True)
            return False

    def acknowledge(self, entry_id: str) -> bool:
        try:
            self.stream.acknowledge(entry_id)
        except Exception as e:
            logger.error(f"Failed to acknowledge message {entry_id}: {e}")
            return False
        return True

    def store_result(self, task_id: str, result: Optional[str]) -> None:
        """Cache the result on the stream's Redis; best effort."""
        try:
            self.stream.store_result(task_id, result or "", self.result_ttl)
        except Exception as e:
            logger.error(f"Failed to store result for task {task_id}: {e}")


def main():
    """Entry point for a standalone worker node."""
    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    worker = Worker()
    try:
        worker.run(stop_event)
    finally:
        worker.stream.close()


if __name__ == "__main__":
    main()
