"""Data processing handler."""

from typing import Any, Dict, List

from taskqueue.handlers.base import BaseHandler


class DataProcessingHandler(BaseHandler):
    """Summarize a list of JSON records."""

    task_type = "DataProcessing"

    def _run(self, data: Dict[str, Any]) -> Dict[str, Any]:
        records: List[Any] = data.get("records", [])
        if not isinstance(records, list):
            raise ValueError("records must be a list")

        fields = set()
        for record in records:
            if isinstance(record, dict):
                fields.update(record.keys())

        return {
            "status": "Processed",
            "records": len(records),
            "fields": sorted(fields),
        }
