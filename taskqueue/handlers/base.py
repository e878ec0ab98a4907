"""Base task handler."""

import json
import logging
import time
from typing import Any, Dict

logger = logging.getLogger(__name__)


def parse_payload(payload: str) -> Dict[str, Any]:
    """
    Interpret a task payload as a JSON object.

    Empty payloads become an empty dict and JSON values that are not objects
    are wrapped as {"value": ...}.

    Raises:
        ValueError: If the payload is not valid JSON
    """
    if not payload or not payload.strip():
        return {}

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise ValueError(f"Payload is not valid JSON: {e.msg}") from e

    if isinstance(data, dict):
        return data
    return {"value": data}


class BaseHandler:
    """Base class for task handlers, one per task type."""

    task_type = "Default"

    def execute(self, payload: str) -> str:
        """
        Run the handler on a raw payload.

        A numeric ``simulate_seconds`` key in the payload makes the handler
        sleep first, standing in for real work.

        Args:
            payload: Opaque payload string from the task message

        Returns:
            Result serialized as a JSON string

        Raises:
            Exception: Any failure; the processor turns it into a failed result
        """
        data = parse_payload(payload)

        delay = data.get("simulate_seconds")
        if isinstance(delay, (int, float)) and delay > 0:
            time.sleep(delay)

        result = self._run(data)
        if not self._validate(result):
            raise ValueError(f"{self.__class__.__name__} produced an invalid result")

        return json.dumps(result, default=str)

    def _run(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the handler logic (to be implemented by subclasses).

        Args:
            data: Decoded payload

        Returns:
            Result dict
        """
        raise NotImplementedError

    def _validate(self, result: Dict[str, Any]) -> bool:
        """
        Validate the handler output (to be overridden by subclasses).

        Args:
            result: Handler output

        Returns:
            True if valid, False otherwise
        """
        return isinstance(result, dict)
