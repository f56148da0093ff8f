"""
Tests for the /api/bulk endpoints.

The orchestrator singleton is swapped for one backed by the seeded
in-memory store, and the client is used as a context manager so the
background execution task runs on the app's event loop.
"""

import time

import pytest
from fastapi.testclient import TestClient

from src.main import app
from src.operations.orchestrator import set_orchestrator


@pytest.fixture
def client(orchestrator):
    set_orchestrator(orchestrator)
    with TestClient(app) as test_client:
        yield test_client
    set_orchestrator(None)


def _body(**overrides):
    body = {
        "type": "tasks",
        "action": "status",
        "targetIds": [1, 2, 3],
        "changes": {"newStatus": "done"},
        "options": {"continueOnError": True, "createBackup": True},
    }
    body.update(overrides)
    return body


def _wait_for_terminal(client, operation_id, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        progress = client.get(f"/api/bulk/progress/{operation_id}").json()["progress"]
        if progress["status"] in ("completed", "failed", "cancelled"):
            return progress
        time.sleep(0.02)
    raise AssertionError(f"Operation {operation_id} did not finish")


# ============================================================
# DRY RUN
# ============================================================

def test_list_actions(client):
    response = client.get("/api/bulk/actions/projects")

    assert response.status_code == 200
    ids = [a["id"] for a in response.json()["actions"]]
    assert "update_budget" in ids
    assert "assign_to" not in ids


def test_list_actions_unknown_type(client):
    response = client.get("/api/bulk/actions/invoices")

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_validate(client):
    response = client.post("/api/bulk/validate", json=_body())

    assert response.status_code == 200
    validation = response.json()["validation"]
    assert validation["valid"] is True
    assert [r["status"] for r in validation["perRecord"]] == ["valid", "error", "valid"]
    assert validation["perRecord"][0]["computedChanges"] == {"status": "done"}


def test_preview(client):
    response = client.post("/api/bulk/preview", json=_body())

    assert response.status_code == 200
    preview = response.json()["preview"]
    assert preview["affectedCount"] == 2
    assert preview["previewData"][0]["newValues"]["status"] == "done"
    assert preview["previewData"][0]["currentValues"]["status"] == "todo"


def test_unknown_action_is_bad_request(client):
    response = client.post("/api/bulk/validate", json=_body(action="merge"))

    assert response.status_code == 400
    assert response.json()["errors"] == ["Unknown action: merge"]


def test_malformed_body_is_rejected(client):
    response = client.post("/api/bulk/validate", json=_body(action="<b>status</b>"))

    assert response.status_code == 422


# ============================================================
# EXECUTION
# ============================================================

def test_execute_then_rollback(client, repository):
    response = client.post("/api/bulk/execute", json=_body())

    assert response.status_code == 202
    operation_id = response.json()["operationId"]

    progress = _wait_for_terminal(client, operation_id)
    assert progress["status"] == "completed"
    assert progress["successCount"] == 2
    assert progress["errorCount"] == 1
    assert progress["canRollback"] is True
    assert "snapshots" not in progress

    rollback = client.post(f"/api/bulk/rollback/{operation_id}")
    assert rollback.status_code == 200
    assert rollback.json()["rollback"]["restoredIds"] == ["1", "3"]

    again = client.post(f"/api/bulk/rollback/{operation_id}")
    assert again.status_code == 409


def test_execute_refused_when_stop_on_error(client):
    response = client.post("/api/bulk/execute", json=_body(options={"continueOnError": False}))

    assert response.status_code == 400
    assert "continueOnError" in response.json()["errors"][0]


def test_cancel_finished_operation_conflicts(client):
    operation_id = client.post("/api/bulk/execute", json=_body(targetIds=[1])).json()["operationId"]
    _wait_for_terminal(client, operation_id)

    response = client.post(f"/api/bulk/cancel/{operation_id}")

    assert response.status_code == 409


def test_progress_unknown_operation(client):
    response = client.get("/api/bulk/progress/does-not-exist")

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_store_outage_is_service_unavailable(client, repository):
    repository.set_unavailable()

    response = client.post("/api/bulk/validate", json=_body())

    assert response.status_code == 503


# ============================================================
# SERVICE ENDPOINTS
# ============================================================

def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["services"]["record_store"] == "memory"


def test_metrics(client):
    client.post("/api/bulk/validate", json=_body())

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "bulk_" in response.text


# ============================================================
# SELECTION & HISTORY
# ============================================================

def test_select_targets(client):
    response = client.post("/api/bulk/select", json={
        "type": "tasks",
        "filters": {"type": "tasks", "status": ["todo", "in_progress"], "search": ""},
        "limit": 1000,
    })

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert [item["id"] for item in body["items"]] == ["1", "3"]
    assert body["items"][0]["name"] == "Reconcile bank feed"


def test_select_unknown_type(client):
    response = client.post("/api/bulk/select", json={"type": "invoices"})

    assert response.status_code == 400


def test_select_store_outage(client, repository):
    repository.set_unavailable()

    response = client.post("/api/bulk/select", json={"type": "tasks"})

    assert response.status_code == 503


def test_operation_history(client):
    first = client.post("/api/bulk/execute", json=_body(targetIds=[1])).json()["operationId"]
    _wait_for_terminal(client, first)
    second = client.post("/api/bulk/execute", json=_body(targetIds=[3])).json()["operationId"]
    _wait_for_terminal(client, second)

    response = client.get("/api/bulk/operations")

    assert response.status_code == 200
    operations = response.json()["operations"]
    assert [op["id"] for op in operations] == [second, first]
    assert "itemResults" not in operations[0]
    assert operations[0]["descriptor"]["actionId"] == "status"

    limited = client.get("/api/bulk/operations", params={"limit": 1, "status": "completed"})
    assert [op["id"] for op in limited.json()["operations"]] == [second]


def test_operation_history_bad_status(client):
    response = client.get("/api/bulk/operations", params={"status": "exploded"})

    assert response.status_code == 400
