"""Error taxonomy for the task coordination layer."""


class TaskQueueError(Exception):
    """Base class for all task queue errors."""


class DuplicateTaskId(TaskQueueError):
    """A task with the same identifier already exists."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} already exists")
        self.task_id = task_id


class TaskNotFound(TaskQueueError):
    """No task with the given identifier exists."""

    def __init__(self, task_id: str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class WorkerNotFound(TaskQueueError):
    """No worker with the given identifier is registered."""

    def __init__(self, worker_id: str):
        super().__init__(f"Worker {worker_id} not found")
        self.worker_id = worker_id


class MalformedMessage(TaskQueueError):
    """A stream message that can never be processed; acknowledged and dropped."""


class TransientDependencyError(TaskQueueError):
    """The record store, the stream or the coordinator is temporarily unavailable."""


class InvalidStatusTransition(TaskQueueError):
    """The requested status change is not allowed from the task's current status."""

    def __init__(self, task_id: str, current: str, requested: str):
        super().__init__(f"Task {task_id} cannot move from {current} to {requested}")
        self.task_id = task_id
        self.current = current
        self.requested = requested


class RetriesExhausted(TaskQueueError):
    """The task used up its retry budget and may not be processed again."""

    def __init__(self, task_id: str, retry_count: int, max_retries: int):
        super().__init__(f"Task {task_id} exhausted its retries ({retry_count}/{max_retries})")
        self.task_id = task_id
        self.retry_count = retry_count
        self.max_retries = max_retries
