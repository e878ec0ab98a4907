"""Task execution: dispatch a task message to the handler for its type."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, Optional, Type

from taskqueue.database import utcnow
from taskqueue.handlers import (
    BaseHandler,
    ComputeHandler,
    DataProcessingHandler,
    DefaultHandler,
    EmailHandler,
)
from taskqueue.schemas.message import TaskMessage

logger = logging.getLogger(__name__)

BUILTIN_HANDLERS = (ComputeHandler, DataProcessingHandler, EmailHandler, DefaultHandler)


@dataclass
class ExecutionResult:
    """Outcome of executing one task."""

    success: bool
    result: Optional[str] = None
    error_message: Optional[str] = None
    processed_at: datetime = field(default_factory=utcnow)


class TaskProcessor:
    """Execute tasks with pluggable per-type handlers."""

    def __init__(self, handlers: Optional[Iterable[Type[BaseHandler]]] = None):
        """Initialize the processor with the built-in handlers unless given others."""
        self.handlers: Dict[str, Type[BaseHandler]] = {}
        for handler_class in handlers or BUILTIN_HANDLERS:
            self.register(handler_class)

    def register(self, handler_class: Type[BaseHandler]) -> None:
        """Route tasks of handler_class.task_type to handler_class."""
        self.handlers[handler_class.task_type] = handler_class

    def handler_for(self, task_type: str) -> BaseHandler:
        """Instantiate the handler for task_type, falling back to Default."""
        handler_class = self.handlers.get(task_type) or self.handlers.get("Default", DefaultHandler)
        return handler_class()

    def process(self, message: TaskMessage) -> ExecutionResult:
        """Execute a task. Handler errors become a failed result, never an exception."""
        logger.info(f"Processing task {message.task_id} of type {message.task_type}")

        try:
            result = self.handler_for(message.task_type).execute(message.payload)
        except Exception as e:
            logger.error(f"Error processing task {message.task_id}: {e}", exc_info=True)
            return ExecutionResult(success=False, error_message=str(e) or e.__class__.__name__)

        logger.info(f"Task {message.task_id} executed successfully")
        return ExecutionResult(success=True, result=result)
