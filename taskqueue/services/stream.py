"""Redis stream access with consumer-group semantics."""

import logging
from typing import Dict, List, Optional, Tuple

import redis

from taskqueue.config import settings
from taskqueue.errors import TransientDependencyError

logger = logging.getLogger(__name__)

# (entry id, fields)
StreamEntry = Tuple[str, Dict[str, str]]


class TaskStream:
    """Thin wrapper around one Redis stream and its consumer group."""

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        stream_name: Optional[str] = None,
        group_name: Optional[str] = None,
    ):
        """Initialize the stream. A client is created from REDIS_URL when omitted."""
        self.client = client or redis.Redis.from_url(settings.REDIS_URL, decode_responses=True)
        self.stream_name = stream_name or settings.STREAM_NAME
        self.group_name = group_name or settings.CONSUMER_GROUP

    def enqueue(self, fields: Dict[str, str]) -> str:
        """Append an entry and return its id."""
        try:
            return self.client.xadd(self.stream_name, fields)
        except redis.RedisError as e:
            raise TransientDependencyError(f"Failed to enqueue onto {self.stream_name}: {e}") from e

    def ensure_group(self) -> bool:
        """
        Create the consumer group if it does not exist yet.

        The group starts at the beginning of the stream, so entries added
        before any worker started are still delivered.

        Returns:
            True if the group was created, False if it already existed
        """
        try:
            self.client.xgroup_create(self.stream_name, self.group_name, id="0", mkstream=True)
        except redis.ResponseError as e:
            if "BUSYGROUP" in str(e):
                return False
            raise TransientDependencyError(f"Failed to create group {self.group_name}: {e}") from e
        except redis.RedisError as e:
            raise TransientDependencyError(f"Failed to create group {self.group_name}: {e}") from e
        return True

    def read_group(self, consumer_name: str, count: int, block_ms: int) -> List[StreamEntry]:
        """Read up to count entries never delivered to any consumer of the group."""
        try:
            response = self.client.xreadgroup(
                self.group_name,
                consumer_name,
                {self.stream_name: ">"},
                count=count,
                block=block_ms,
            )
        except redis.RedisError as e:
            raise TransientDependencyError(f"Failed to read from {self.stream_name}: {e}") from e

        entries: List[StreamEntry] = []
        for _stream, stream_entries in response or []:
            entries.extend(_normalize(stream_entries))
        return entries

    def claim_abandoned(self, consumer_name: str, min_idle_ms: int, count: int) -> List[StreamEntry]:
        """Take over entries another consumer read but never acknowledged."""
        try:
            response = self.client.xautoclaim(
                self.stream_name,
                self.group_name,
                consumer_name,
                min_idle_time=min_idle_ms,
                start_id="0-0",
                count=count,
            )
        except redis.RedisError as e:
            raise TransientDependencyError(f"Failed to claim pending entries: {e}") from e

        # [next start id, claimed entries, (Redis 7+) deleted ids]
        if not response or len(response) < 2:
            return []
        return _normalize(response[1])

    def acknowledge(self, entry_id: str) -> None:
        try:
            self.client.xack(self.stream_name, self.group_name, entry_id)
        except redis.RedisError as e:
            raise TransientDependencyError(f"Failed to acknowledge {entry_id}: {e}") from e

    def store_result(self, task_id: str, value: str, ttl_seconds: int) -> None:
        """Cache a task result under task:result:<task_id>."""
        try:
            self.client.set(f"task:result:{task_id}", value, ex=ttl_seconds)
        except redis.RedisError as e:
            raise TransientDependencyError(f"Failed to store result for {task_id}: {e}") from e

    def close(self) -> None:
        self.client.close()


def _normalize(stream_entries) -> List[StreamEntry]:
    # Entries deleted from the stream while pending come back with no fields
    return [(entry_id, dict(fields or {})) for entry_id, fields in stream_entries]


_task_stream: Optional[TaskStream] = None


def get_task_stream() -> TaskStream:
    """FastAPI dependency returning the process-wide task stream."""
    global _task_stream
    if _task_stream is None:
        _task_stream = TaskStream()
    return _task_stream
