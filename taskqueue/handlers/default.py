"""Fallback handler for task types without a dedicated handler."""

from typing import Any, Dict

from taskqueue.database import utcnow
from taskqueue.handlers.base import BaseHandler


class DefaultHandler(BaseHandler):
    """Acknowledge the payload and report completion."""

    task_type = "Default"

    def _run(self, data: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "status": "Completed",
            "keys": sorted(data.keys()),
            "timestamp": utcnow().isoformat(),
        }
