"""Wire format of task messages on the stream."""

import json
from datetime import datetime
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError

from taskqueue.errors import MalformedMessage
from taskqueue.models.task import DEFAULT_TASK_TYPE


class TaskMessage(BaseModel):
    """Task message carried in the ``task`` field of a stream entry."""

    task_id: str = Field(..., min_length=1)
    task_type: str = DEFAULT_TASK_TYPE
    payload: str = ""
    priority: int = 0
    created_at: Optional[datetime] = None


def encode_task_message(message: TaskMessage) -> Dict[str, str]:
    """Build the stream entry fields for a task message."""
    created_at = message.created_at.isoformat() if message.created_at else ""
    return {
        "task": message.model_dump_json(),
        "task_id": message.task_id,
        "task_type": message.task_type,
        "priority": str(message.priority),
        "created_at": created_at,
    }


def decode_task_message(fields: Dict[str, str]) -> TaskMessage:
    """
    Decode stream entry fields into a task message.

    Only the ``task`` field is authoritative; the other fields are denormalized
    copies for stream inspection.

    Raises:
        MalformedMessage: If the entry is empty or cannot be decoded
    """
    raw = fields.get("task")
    if not raw:
        raise MalformedMessage("Empty task payload")

    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedMessage(f"Task payload is not valid JSON: {e}")

    if not isinstance(data, dict):
        raise MalformedMessage("Task payload is not a JSON object")

    try:
        return TaskMessage.model_validate(data)
    except ValidationError as e:
        raise MalformedMessage(f"Invalid task message: {e.error_count()} validation error(s)")
