"""Email handler. Delivery is simulated; only the envelope is checked."""

import uuid
from typing import Any, Dict

from taskqueue.handlers.base import BaseHandler


class EmailHandler(BaseHandler):
    task_type = "Email"

    def _run(self, data: Dict[str, Any]) -> Dict[str, Any]:
        recipient = data.get("to")
        if not recipient or "@" not in str(recipient):
            raise ValueError("Email task needs a valid 'to' address")

        return {
            "status": "Sent",
            "to": recipient,
            "subject": data.get("subject", ""),
            "message_id": str(uuid.uuid4()),
        }
