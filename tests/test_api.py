"""
Tests for the HTTP API (FastAPI TestClient).
"""

import sqlite3

import pytest
from fastapi.testclient import TestClient

from taskboard import api
from taskboard.config import Settings
from taskboard.core import repository
from taskboard.core.audit import emitter


@pytest.fixture
def client(monkeypatch, temp_db):
    monkeypatch.setattr(api, "configure_logging", lambda level: None)
    app = api.create_app(Settings(db_path=temp_db, log_level="WARNING"))
    return TestClient(app)


@pytest.fixture
def status_ids(client):
    return {s["code"]: s["id"] for s in client.get("/task-statuses").json()}


def create(client, title, **fields):
    response = client.post("/tasks", json={"title": title, **fields})
    assert response.status_code == 201, response.text
    return response.json()


def column(client, status_id):
    tasks = client.get("/tasks", params={"status_id": status_id}).json()
    return [(t["title"], t["order"]) for t in tasks]


# --- tasks ---


def test_create_and_get(client):
    task = create(client, "Write docs", priority="high", type="docs")

    assert task["status_code"] == "backlog"
    assert task["priority"] == "High"
    assert task["type"] == "docs"
    assert task["order"] == 0

    fetched = client.get(f"/tasks/{task['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["title"] == "Write docs"


def test_create_validation(client):
    missing = client.post("/tasks", json={})
    assert missing.status_code == 400
    assert missing.json()["error"] == "validation"

    blank = client.post("/tasks", json={"title": "  "})
    assert blank.status_code == 400
    assert blank.json()["message"] == "Task title cannot be empty"


def test_get_missing_task(client):
    response = client.get("/tasks/999")

    assert response.status_code == 404
    assert response.json() == {
        "error": "not_found",
        "message": "Task 999 not found",
        "details": {"task_id": 999},
    }


def test_list_filters(client, status_ids):
    create(client, "Unscoped", status_id=status_ids["todo"])
    create(client, "Boarded", status_id=status_ids["todo"], board_id=4)

    assert [t["title"] for t in client.get("/tasks", params={"board_id": 4}).json()] == ["Boarded"]
    assert [t["title"] for t in client.get("/tasks", params={"unscoped": True}).json()] == ["Unscoped"]
    assert len(client.get("/tasks").json()) == 2
    assert client.get("/tasks", params={"status_id": 77}).status_code == 404


def test_patch_task(client):
    task = create(client, "Draft")

    response = client.patch(
        f"/tasks/{task['id']}",
        json={"title": "Final", "content": {"assignee": "kim"}},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["title"] == "Final"
    assert body["content"]["assignee"] == "kim"
    assert body["order"] == task["order"]


def test_criteria(client):
    task = create(client, "With checklist")

    added = client.post(f"/tasks/{task['id']}/criteria", json={"description": "Has tests"})
    assert added.status_code == 201
    criterion = added.json()["content"]["acceptance_criteria"][0]

    done = client.put(
        f"/tasks/{task['id']}/criteria/{criterion['id']}", json={"completed": True}
    )
    assert done.json()["progress"] == {"total": 1, "completed": 1, "percentage": 100}

    missing = client.put(f"/tasks/{task['id']}/criteria/nope", json={"completed": True})
    assert missing.status_code == 404


# --- move ---


def test_move_across_columns(client, status_ids):
    a, b, c = (create(client, n, status_id=status_ids["todo"]) for n in "ABC")
    create(client, "D", status_id=status_ids["in_progress"])

    response = client.put(
        f"/tasks/{a['id']}/move",
        json={
            "status_id": status_ids["in_progress"],
            "order": 0,
            "previous_status_id": status_ids["todo"],
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "In Progress"
    assert body["priority"] == "Medium"
    assert body["type"] == "feature"
    assert column(client, status_ids["todo"]) == [("B", 0), ("C", 1)]
    assert column(client, status_ids["in_progress"]) == [("A", 0), ("D", 1)]


def test_move_within_column(client, status_ids):
    a, b, c = (create(client, n, status_id=status_ids["todo"]) for n in "ABC")

    response = client.put(f"/tasks/{c['id']}/move", json={"status_id": status_ids["todo"], "order": 0})

    assert response.status_code == 200
    assert column(client, status_ids["todo"]) == [("C", 0), ("A", 1), ("B", 2)]


@pytest.mark.parametrize(
    "body",
    [
        {"order": 0},
        {"status_id": 2},
        {"status_id": 2, "order": -1},
        {"status_id": 0, "order": 0},
        {"status_id": "todo", "order": 0},
        {"status_id": 999, "order": 0},
        {"status_id": 2, "order": 0, "type": "epic"},
    ],
)
def test_move_bad_request(client, body):
    task = create(client, "Stay put")

    response = client.put(f"/tasks/{task['id']}/move", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "validation"
    assert client.get(f"/tasks/{task['id']}").json()["status_code"] == "backlog"


def test_move_missing_task(client, status_ids):
    response = client.put("/tasks/555/move", json={"status_id": status_ids["todo"], "order": 0})
    assert response.status_code == 404


def test_move_store_failure_is_internal(client, monkeypatch, status_ids):
    task = create(client, "Fragile", status_id=status_ids["todo"])

    def broken(*args, **kwargs):
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(repository, "update_task_position", broken)

    response = client.put(f"/tasks/{task['id']}/move", json={"status_id": status_ids["done"], "order": 0})

    assert response.status_code == 500
    assert response.json()["error"] == "internal"
    assert response.json()["details"]["task_id"] == task["id"]


# --- delete and dependencies ---


def test_delete_with_dependents_conflicts(client):
    base = create(client, "Base")
    follower = create(client, "Follower")
    edge = client.post(f"/tasks/{follower['id']}/dependencies", json={"depends_on_id": base["id"]})
    assert edge.status_code == 201

    response = client.delete(f"/tasks/{base['id']}")

    assert response.status_code == 409
    assert response.json()["error"] == "conflict"
    assert response.json()["dependent_count"] == 1
    assert client.get(f"/tasks/{base['id']}").status_code == 200


def test_delete(client):
    a, b = create(client, "A"), create(client, "B")

    assert client.delete(f"/tasks/{a['id']}").status_code == 204
    assert client.delete(f"/tasks/{a['id']}").status_code == 404
    assert client.get(f"/tasks/{b['id']}").json()["order"] == 0


def test_dependency_routes(client):
    a, b = create(client, "A"), create(client, "B")
    client.post(f"/tasks/{b['id']}/dependencies", json={"depends_on_id": a["id"]})

    cycle = client.post(f"/tasks/{a['id']}/dependencies", json={"depends_on_id": b["id"]})
    assert cycle.status_code == 400

    assert client.delete(f"/tasks/{b['id']}/dependencies/{a['id']}").status_code == 204
    assert client.delete(f"/tasks/{b['id']}/dependencies/{a['id']}").status_code == 404


def test_history(client, status_ids):
    task = create(client, "Tracked")
    client.put(f"/tasks/{task['id']}/move", json={"status_id": status_ids["done"], "order": 0, "comment": "done"})
    assert emitter.flush()

    history = client.get(f"/tasks/{task['id']}/history").json()

    assert history["status_history"][0]["to_status_id"] == status_ids["done"]
    assert history["status_history"][0]["comment"] == "done"
    assert [e["action"] for e in history["audit"]] == ["task:created", "task:moved"]


# --- reference data and authorization ---


def test_reference_routes(client):
    assert len(client.get("/task-statuses").json()) == 5
    assert [p["code"] for p in client.get("/task-priorities").json()] == ["low", "medium", "high", "critical"]
    assert client.get("/task-types").json()[0]["code"] == "feature"


def test_authorize_denies_before_core(monkeypatch, temp_db):
    monkeypatch.setattr(api, "configure_logging", lambda level: None)
    seen = []

    def authorize(request, action):
        seen.append(action)
        return action != "task:move"

    client = TestClient(api.create_app(Settings(db_path=temp_db), authorize=authorize))
    task = create(client, "Guarded")

    response = client.put(f"/tasks/{task['id']}/move", json={"status_id": 2, "order": 0})

    assert response.status_code == 403
    assert response.json()["error"] == "forbidden"
    assert client.get(f"/tasks/{task['id']}").json()["status_code"] == "backlog"
    assert "task:move" in seen


# --- malformed input and unexpected failures ---


@pytest.mark.parametrize(
    "content",
    [
        {"attachments": 5},
        {"acceptance_criteria": [{"description": "d", "order": "abc"}]},
        {"acceptance_criteria": 5},
    ],
)
def test_malformed_content_is_rejected(client, content):
    response = client.post("/tasks", json={"title": "x", "content": content})

    assert response.status_code == 400
    assert response.json()["error"] == "validation"
    assert client.get("/tasks").json() == []


def test_malformed_content_on_patch(client):
    task = create(client, "Draft")

    response = client.patch(f"/tasks/{task['id']}", json={"content": {"attachments": 5}})

    assert response.status_code == 400
    assert response.json()["error"] == "validation"


@pytest.mark.parametrize(
    "body",
    [
        {"title": "x", "board_id": 2**70},
        {"title": "x", "status_id": 2**63},
    ],
)
def test_ids_beyond_64_bits_on_create(client, body):
    response = client.post("/tasks", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "validation"


def test_ids_beyond_64_bits_elsewhere(client, status_ids):
    task = create(client, "Anchor")
    huge = 2**70

    assert client.get("/tasks", params={"board_id": huge}).status_code == 400
    assert client.get(f"/tasks/{huge}").status_code == 404
    assert client.put(f"/tasks/{huge}/move", json={"status_id": status_ids["todo"], "order": 0}).status_code == 400
    assert client.put(f"/tasks/{task['id']}/move", json={"status_id": status_ids["todo"], "order": huge}).status_code == 400
    assert client.post(f"/tasks/{task['id']}/dependencies", json={"depends_on_id": huge}).status_code == 400


def test_list_by_priority(client, status_ids):
    create(client, "Urgent", priority="critical")
    create(client, "Routine")

    titles = [t["title"] for t in client.get("/tasks", params={"priority": "critical"}).json()]
    assert titles == ["Urgent"]

    unknown = client.get("/tasks", params={"priority": "urgent"})
    assert unknown.status_code == 400
    assert unknown.json()["details"]["valid"] == ["low", "medium", "high", "critical"]


def test_unexpected_failure_has_error_kind(monkeypatch, temp_db):
    monkeypatch.setattr(api, "configure_logging", lambda level: None)
    client = TestClient(
        api.create_app(Settings(db_path=temp_db)), raise_server_exceptions=False
    )

    def broken(task_id):
        raise RuntimeError("boom")

    monkeypatch.setattr(api.service, "get_task", broken)

    response = client.get("/tasks/1")

    assert response.status_code == 500
    assert response.json() == {
        "error": "internal",
        "message": "Internal server error",
        "details": {},
    }
