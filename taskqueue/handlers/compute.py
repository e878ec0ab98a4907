"""Compute handler (pure code)."""

import math
from typing import Any, Dict, List

from taskqueue.handlers.base import BaseHandler

OPERATIONS = {
    "sum": sum,
    "product": math.prod,
    "min": min,
    "max": max,
}


class ComputeHandler(BaseHandler):
    """Reduce a list of numbers with a named operation."""

    task_type = "Compute"

    def _run(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``operation`` (default sum) to ``numbers``."""
        numbers: List[Any] = data.get("numbers", [])
        operation = data.get("operation", "sum")

        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        if not isinstance(numbers, list) or not all(
            isinstance(n, (int, float)) and not isinstance(n, bool) for n in numbers
        ):
            raise ValueError("numbers must be a list of numbers")
        if not numbers and operation in ("min", "max"):
            raise ValueError(f"{operation} of an empty list is undefined")

        return {
            "status": "Computed",
            "operation": operation,
            "result": OPERATIONS[operation](numbers),
        }

    def _validate(self, result: Dict[str, Any]) -> bool:
        return "result" in result
