"""HTTP client for the coordinator API, used by worker nodes and the producer."""

import logging
from typing import Any, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from taskqueue.config import settings
from taskqueue.errors import (
    DuplicateTaskId,
    InvalidStatusTransition,
    RetriesExhausted,
    TaskNotFound,
    TransientDependencyError,
    WorkerNotFound,
)
from taskqueue.models.task import TaskStatus

logger = logging.getLogger(__name__)


def _error_detail(response: httpx.Response) -> Dict[str, Any]:
    """Structured error detail of a response, or an empty dict."""
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        return {}
    return detail if isinstance(detail, dict) else {}


class CoordinatorClient:
    """Client for the coordinator's task and worker endpoints."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client. Unset arguments fall back to settings."""
        self.base_url = (base_url or settings.COORDINATOR_URL).rstrip("/")
        self.api_token = settings.COORDINATOR_API_TOKEN if api_token is None else api_token
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS
        self.transport = transport

    def _build_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send a request; transport errors and 5xx responses become TransientDependencyError."""
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(
                    method,
                    f"{self.base_url}{path}",
                    headers=self._build_headers(),
                    **kwargs,
                )
        except httpx.HTTPError as e:
            raise TransientDependencyError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 500:
            raise TransientDependencyError(f"{method} {path} returned {response.status_code}")
        return response

    def register_worker(
        self, worker_id: str, host_address: Optional[str], port: int
    ) -> Optional[Dict[str, Any]]:
        """
        Register this worker. Failures are logged, never raised.

        Returns:
            The worker record, or None if registration failed
        """
        try:
            response = self._request(
                "POST",
                "/workers/register",
                json={"worker_id": worker_id, "host_address": host_address, "port": port},
            )
        except TransientDependencyError as e:
            logger.error(f"Failed to register worker with coordinator: {e}")
            return None

        if response.status_code != 200:
            logger.error(f"Worker registration rejected with {response.status_code}: {response.text}")
            return None
        return response.json()

    def send_heartbeat(self, worker_id: str) -> bool:
        """
        Send a heartbeat.

        Returns:
            False if the coordinator does not know this worker

        Raises:
            TransientDependencyError: If the coordinator is unreachable
        """
        response = self._request("GET", f"/workers/heartbeat/{worker_id}")
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True

    def get_active_workers(self) -> List[Dict[str, Any]]:
        response = self._request("GET", "/workers/active")
        response.raise_for_status()
        return response.json()

    @retry(
        retry=retry_if_exception_type(TransientDependencyError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        reraise=True,
    )
    def update_task_status(
        self,
        task_id: str,
        status: TaskStatus,
        result: Optional[str] = None,
        error_message: Optional[str] = None,
        worker_ref: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Report a task status to the coordinator.

        Transient failures are retried a few times before being raised.

        Returns:
            The task as stored after the report

        Raises:
            TaskNotFound: If the coordinator does not know the task
            InvalidStatusTransition: If the report conflicts with the stored status
            RetriesExhausted: If the task may not be processed again
            WorkerNotFound: If worker_ref is unknown to the coordinator
            TransientDependencyError: If the coordinator stays unreachable
        """
        response = self._request(
            "POST",
            f"/tasks/status/{task_id}",
            json={
                "status": TaskStatus(status).value,
                "result": result,
                "error_message": error_message,
                "worker_ref": worker_ref,
            },
        )

        if response.status_code == 404:
            raise TaskNotFound(task_id)
        if response.status_code == 400 and _error_detail(response).get("error") == "WorkerNotFound":
            raise WorkerNotFound(str(worker_ref))
        if response.status_code == 409:
            detail = _error_detail(response)
            if detail.get("error") == "RetriesExhausted":
                raise RetriesExhausted(
                    task_id, detail.get("retry_count", 0), detail.get("max_retries", 0)
                )
            raise InvalidStatusTransition(task_id, detail.get("current", ""), TaskStatus(status).value)

        response.raise_for_status()
        return response.json()

    def submit_task(
        self,
        payload: str,
        task_type: str = "Default",
        priority: int = 0,
        task_id: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Submit a task; the coordinator records it and enqueues its message.

        Raises:
            DuplicateTaskId: If task_id is already taken
        """
        body: Dict[str, Any] = {"payload": payload, "task_type": task_type, "priority": priority}
        if task_id:
            body["task_id"] = task_id
        if max_retries is not None:
            body["max_retries"] = max_retries

        response = self._request("POST", "/tasks", json=body)
        if response.status_code == 400 and _error_detail(response).get("error") == "DuplicateTaskId":
            raise DuplicateTaskId(task_id or "")
        response.raise_for_status()
        return response.json()

    def get_task(self, task_id: str) -> Dict[str, Any]:
        response = self._request("GET", f"/tasks/{task_id}")
        if response.status_code == 404:
            raise TaskNotFound(task_id)
        response.raise_for_status()
        return response.json()

    def list_tasks(self, status: Optional[str] = None, limit: int = 100) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"limit": limit}
        if status:
            params["status"] = status
        response = self._request("GET", "/tasks", params=params)
        response.raise_for_status()
        return response.json()
