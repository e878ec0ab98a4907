"""Tests for the coordinator HTTP client."""

import json

import httpx
import pytest
from tenacity import wait_none

from taskqueue.errors import (
    DuplicateTaskId,
    InvalidStatusTransition,
    RetriesExhausted,
    TaskNotFound,
    TransientDependencyError,
    WorkerNotFound,
)
from taskqueue.models.task import TaskStatus
from taskqueue.services.coordinator_client import CoordinatorClient


def _client(handler, token="secret"):
    return CoordinatorClient(
        base_url="http://coordinator",
        api_token=token,
        transport=httpx.MockTransport(handler),
    )


def test_sends_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[])

    _client(handler).list_tasks(status="Pending", limit=5)

    assert seen["auth"] == "Bearer secret"


def test_no_token_no_header():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(200, json=[])

    _client(handler, token="").get_active_workers()

    assert seen["auth"] is None


def test_update_status_payload():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"task_id": "t1", "status": "Completed"})

    task = _client(handler).update_task_status("t1", TaskStatus.COMPLETED, result="42", worker_ref=3)

    assert task["status"] == "Completed"
    assert seen["path"] == "/tasks/status/t1"
    assert seen["body"] == {
        "status": "Completed",
        "result": "42",
        "error_message": None,
        "worker_ref": 3,
    }


def test_update_status_not_found():
    client = _client(lambda request: httpx.Response(404, json={"detail": "Task not found"}))

    with pytest.raises(TaskNotFound):
        client.update_task_status("t1", TaskStatus.PROCESSING)


def test_update_status_conflicts():
    def invalid(request):
        return httpx.Response(
            409,
            json={"detail": {"error": "InvalidStatusTransition", "current": "Failed"}},
        )

    with pytest.raises(InvalidStatusTransition) as excinfo:
        _client(invalid).update_task_status("t1", TaskStatus.PROCESSING)
    assert excinfo.value.current == "Failed"

    def exhausted(request):
        return httpx.Response(
            409,
            json={"detail": {"error": "RetriesExhausted", "retry_count": 3, "max_retries": 3}},
        )

    with pytest.raises(RetriesExhausted) as excinfo:
        _client(exhausted).update_task_status("t1", TaskStatus.PROCESSING)
    assert excinfo.value.max_retries == 3


def test_update_status_retries_transient_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, json={"task_id": "t1", "status": "Processing"})

    client = _client(handler)
    update = CoordinatorClient.update_task_status.retry_with(wait=wait_none())

    task = update(client, "t1", TaskStatus.PROCESSING)

    assert task["status"] == "Processing"
    assert len(calls) == 3


def test_update_status_gives_up():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = _client(handler)
    update = CoordinatorClient.update_task_status.retry_with(wait=wait_none())

    with pytest.raises(TransientDependencyError):
        update(client, "t1", TaskStatus.PROCESSING)


def test_heartbeat():
    client = _client(lambda request: httpx.Response(200, json={"message": "Heartbeat updated"}))
    assert client.send_heartbeat("w1") is True

    client = _client(lambda request: httpx.Response(404, json={"detail": "Worker not found"}))
    assert client.send_heartbeat("w1") is False


def test_heartbeat_unreachable():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(TransientDependencyError):
        _client(handler).send_heartbeat("w1")


def test_register_worker():
    seen = {}

    def handler(request):
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": 4, "worker_id": "w1"})

    worker = _client(handler).register_worker("w1", "10.0.0.1", 8001)

    assert worker["id"] == 4
    assert seen["body"] == {"worker_id": "w1", "host_address": "10.0.0.1", "port": 8001}


def test_register_worker_failure_returns_none():
    assert _client(lambda request: httpx.Response(401)).register_worker("w1", None, 0) is None

    def unreachable(request):
        raise httpx.ConnectError("refused", request=request)

    assert _client(unreachable).register_worker("w1", None, 0) is None


def test_submit_duplicate_task():
    detail = {"error": "DuplicateTaskId", "message": "Task t1 already exists"}
    client = _client(lambda request: httpx.Response(400, json={"detail": detail}))

    with pytest.raises(DuplicateTaskId):
        client.submit_task("{}", task_id="t1")


def test_submit_malformed_task_is_not_duplicate():
    """Only a duplicate-id rejection maps to DuplicateTaskId."""
    body = {"detail": "Malformed request", "errors": [{"loc": ["body", "task_id"]}]}
    client = _client(lambda request: httpx.Response(400, json=body))

    with pytest.raises(httpx.HTTPStatusError):
        client.submit_task("{}", task_id="x" * 200)


def test_update_status_unknown_worker():
    detail = {"error": "WorkerNotFound", "message": "Worker 9 not found", "worker_ref": 9}
    client = _client(lambda request: httpx.Response(400, json={"detail": detail}))

    with pytest.raises(WorkerNotFound):
        client.update_task_status("t1", TaskStatus.PROCESSING, worker_ref=9)


def test_get_task_not_found():
    with pytest.raises(TaskNotFound):
        _client(lambda request: httpx.Response(404)).get_task("t1")
