"""API tests for the coordinator routes."""

from taskqueue.models.task import Task, TaskStatus
from taskqueue.models.worker import Worker


def _submit(client, headers, **body):
    body.setdefault("payload", '{"numbers": [1, 2]}')
    return client.post("/tasks", json=body, headers=headers)


def _register(client, headers, worker_id="w1"):
    response = client.post(
        "/workers/register",
        json={"worker_id": worker_id, "host_address": "10.0.0.1", "port": 8001},
        headers=headers,
    )
    assert response.status_code == 200
    return response.json()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_requires_token(client):
    """Requests without a valid bearer token are rejected."""
    assert client.get("/tasks").status_code == 401
    assert client.get("/tasks", headers={"Authorization": "Bearer nope"}).status_code == 401
    assert client.post("/workers/register", json={"worker_id": "w1"}).status_code == 401


def test_create_task_enqueues(client, fake_stream, user_headers):
    """A submitted task is recorded Pending and its message lands on the stream."""
    response = _submit(client, user_headers, task_id="t1", task_type="Compute", priority=3)

    assert response.status_code == 200
    body = response.json()
    assert body["task_id"] == "t1"
    assert body["status"] == "Pending"
    assert body["stream_entry_id"] == "1-0"
    assert body["retry_count"] == 0

    entry_id, fields = fake_stream.entries[0]
    assert entry_id == "1-0"
    assert fields["task_id"] == "t1"
    assert fields["task_type"] == "Compute"
    assert fields["priority"] == "3"


def test_create_task_generates_id(client, user_headers):
    response = _submit(client, user_headers)

    assert response.status_code == 200
    assert response.json()["task_id"]


def test_create_duplicate_task(client, fake_stream, user_headers):
    assert _submit(client, user_headers, task_id="t1").status_code == 200

    response = _submit(client, user_headers, task_id="t1")

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "DuplicateTaskId"
    assert len(fake_stream.entries) == 1


def test_create_task_stream_down(client, fake_stream, test_db, user_headers):
    """If the message cannot be enqueued the task is marked Failed."""
    fake_stream.fail_enqueue = True

    response = _submit(client, user_headers, task_id="t1")

    assert response.status_code == 503
    task = test_db.query(Task).filter(Task.task_id == "t1").one()
    assert task.status == TaskStatus.FAILED.value
    assert task.error_message


def test_status_unknown_task(client):
    response = client.post("/tasks/status/ghost", json={"status": "Processing"})
    assert response.status_code == 404


def test_status_invalid_transition(client, user_headers):
    _submit(client, user_headers, task_id="t1")

    response = client.post("/tasks/status/t1", json={"status": "Completed"})

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["error"] == "InvalidStatusTransition"
    assert detail["current"] == "Pending"


def test_status_malformed_body(client, user_headers):
    _submit(client, user_headers, task_id="t1")

    response = client.post("/tasks/status/t1", json={"status": "Exploded"})

    assert response.status_code == 400


def test_status_lifecycle_counts_outcome(client, test_db, user_headers):
    """Processing then Completed records the worker and bumps its counter once."""
    worker = _register(client, user_headers)
    _submit(client, user_headers, task_id="t1")

    response = client.post(
        "/tasks/status/t1", json={"status": "Processing", "worker_ref": worker["id"]}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Processing"
    assert response.json()["worker_id"] == "w1"
    assert response.json()["started_at"] is not None

    done = {"status": "Completed", "result": '{"result": 3}', "worker_ref": worker["id"]}
    response = client.post("/tasks/status/t1", json=done)
    assert response.status_code == 200
    assert response.json()["status"] == "Completed"
    assert response.json()["result"] == '{"result": 3}'

    # A duplicate report is a no-op and is not counted again
    response = client.post("/tasks/status/t1", json={**done, "result": "other"})
    assert response.status_code == 200
    assert response.json()["result"] == '{"result": 3}'

    row = test_db.query(Worker).filter(Worker.worker_id == "w1").one()
    assert row.tasks_processed == 1
    assert row.tasks_failed == 0


def test_status_failure_counts_outcome(client, test_db, user_headers):
    worker = _register(client, user_headers)
    _submit(client, user_headers, task_id="t1")
    client.post("/tasks/status/t1", json={"status": "Processing", "worker_ref": worker["id"]})

    response = client.post(
        "/tasks/status/t1",
        json={"status": "Failed", "error_message": "boom", "worker_ref": worker["id"]},
    )

    assert response.status_code == 200
    assert response.json()["retry_count"] == 1
    assert response.json()["error_message"] == "boom"
    row = test_db.query(Worker).filter(Worker.worker_id == "w1").one()
    assert row.tasks_failed == 1


def test_status_unknown_worker_ref(client, user_headers):
    """A stale worker reference is rejected without touching the task."""
    _submit(client, user_headers, task_id="t1")

    response = client.post("/tasks/status/t1", json={"status": "Processing", "worker_ref": 999})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "WorkerNotFound"
    task = client.get("/tasks/t1", headers=user_headers).json()
    assert task["status"] == "Pending"
    assert task["started_at"] is None


def test_status_retries_exhausted(client, user_headers):
    _submit(client, user_headers, task_id="t1", max_retries=0)

    response = client.post("/tasks/status/t1", json={"status": "Processing"})

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "RetriesExhausted"


def test_get_task_owner_scoped(client, user_headers, other_user_headers, admin_headers):
    """Users only see their own tasks; admins see all."""
    _submit(client, user_headers, task_id="alice-task")

    assert client.get("/tasks/alice-task", headers=user_headers).status_code == 200
    assert client.get("/tasks/alice-task", headers=other_user_headers).status_code == 404
    assert client.get("/tasks/alice-task", headers=admin_headers).status_code == 200
    assert client.get("/tasks/missing", headers=admin_headers).status_code == 404


def test_list_tasks(client, user_headers, other_user_headers, admin_headers):
    _submit(client, user_headers, task_id="a1")
    _submit(client, user_headers, task_id="a2")
    _submit(client, other_user_headers, task_id="b1")
    client.post("/tasks/status/a1", json={"status": "Processing"})

    mine = client.get("/tasks", headers=user_headers).json()
    assert {t["task_id"] for t in mine} == {"a1", "a2"}

    processing = client.get("/tasks?status=Processing", headers=admin_headers).json()
    assert [t["task_id"] for t in processing] == ["a1"]

    everything = client.get("/tasks", headers=admin_headers).json()
    assert len(everything) == 3

    limited = client.get("/tasks?limit=1", headers=admin_headers).json()
    assert len(limited) == 1

    assert client.get("/tasks?limit=0", headers=admin_headers).status_code == 400


def test_worker_register_and_heartbeat(client, user_headers):
    first = _register(client, user_headers)
    second = _register(client, user_headers)

    assert first["id"] == second["id"]
    assert second["status"] == "Active"

    response = client.get("/workers/heartbeat/w1")
    assert response.status_code == 200
    assert response.json() == {"message": "Heartbeat updated"}

    assert client.get("/workers/heartbeat/ghost").status_code == 404


def test_worker_register_malformed(client, user_headers):
    response = client.post(
        "/workers/register", json={"worker_id": "", "port": 70000}, headers=user_headers
    )
    assert response.status_code == 400


def test_active_workers(client, test_db, user_headers):
    _register(client, user_headers, "fresh")
    _register(client, user_headers, "lapsed")

    # Push one worker's heartbeat well outside the liveness window
    lapsed = test_db.query(Worker).filter(Worker.worker_id == "lapsed").one()
    lapsed.last_heartbeat = lapsed.last_heartbeat.replace(year=2000)
    test_db.commit()

    response = client.get("/workers/active", headers=user_headers)

    assert response.status_code == 200
    assert [w["worker_id"] for w in response.json()] == ["fresh"]
    test_db.expire_all()
    assert test_db.query(Worker).filter(Worker.worker_id == "lapsed").one().status == "Inactive"


def test_create_user(client, admin_headers, user_headers):
    response = client.post("/users", json={"username": "carol"}, headers=admin_headers)

    assert response.status_code == 200
    token = response.json()["api_token"]
    assert response.json()["role"] == "User"
    assert client.get("/tasks", headers={"Authorization": f"Bearer {token}"}).status_code == 200

    duplicate = client.post("/users", json={"username": "carol"}, headers=admin_headers)
    assert duplicate.status_code == 400

    forbidden = client.post("/users", json={"username": "dave"}, headers=user_headers)
    assert forbidden.status_code == 403
