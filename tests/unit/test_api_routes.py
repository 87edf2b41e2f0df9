"""
Tests for the HTTP routes (web/routes.py, main.py).

The app runs against a temporary SQLite database; data is seeded through
the API itself.
"""

import time

import pytest
from fastapi.testclient import TestClient

from opsdesk.config import settings
from opsdesk.database.connection import Database
from opsdesk.database.exceptions import GENERIC_BACKEND_MESSAGE
from opsdesk.main import create_app


ADMIN = {"X-User-Id": "1", "X-User-Role": "superadmin"}


def as_user(user_id, role="executive", department_id=None):
    headers = {"X-User-Id": str(user_id), "X-User-Role": role}
    if department_id is not None:
        headers["X-Department-Id"] = str(department_id)
    return headers


@pytest.fixture
def client(tmp_path):
    """Test client with the app lifespan running."""
    app = create_app(Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"))
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def people(client):
    """Admin (id 1), a manager and two of their reports."""
    eng = client.post("/api/departments", json={"name": "Engineering"}, headers=ADMIN).json()
    hr = client.post("/api/departments", json={"name": "Human Resources", "code": "hr"}, headers=ADMIN).json()

    def profile(**data):
        response = client.post("/api/profiles", json=data, headers=ADMIN)
        assert response.status_code == 201, response.text
        return response.json()

    admin = profile(full_name="Ada Admin", email="ada@example.com", role="superadmin", department="engineering")
    manager = profile(full_name="Max Manager", email="max@example.com", role="manager", department="engineering")
    alice = profile(full_name="Alice Smith", email="alice@example.com", manager="max@example.com",
                    department="engineering")
    bob = profile(full_name="Bob Jones", email="bob@example.com", manager="max@example.com",
                  department="engineering")
    assert admin["id"] == 1

    return {
        "eng": eng["id"],
        "hr": hr["id"],
        "manager": as_user(manager["id"], "manager", eng["id"]),
        "alice": as_user(alice["id"], department_id=eng["id"]),
        "bob": as_user(bob["id"], department_id=eng["id"]),
        "alice_id": alice["id"],
    }


# ==================== HEALTH & IDENTITY ====================

class TestHealthAndIdentity:

    def test_root(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json()["service"] == "OpsDesk"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["database"]["status"] == "healthy"

    def test_missing_identity(self, client):
        assert client.get("/api/tasks").status_code == 401

    def test_invalid_identity(self, client):
        assert client.get("/api/tasks", headers={"X-User-Id": "abc"}).status_code == 401
        assert client.get("/api/tasks", headers={"X-User-Id": "1", "X-User-Role": "owner"}).status_code == 401


# ==================== TASKS ====================

class TestTaskRoutes:

    def test_create_get_update(self, client, people):
        created = client.post("/api/tasks", json={"name": "Launch"}, headers=people["alice"])
        assert created.status_code == 201
        task_id = created.json()["id"]

        sub = client.post("/api/tasks", json={"name": "Design", "parent_id": task_id}, headers=people["alice"])
        assert sub.json()["level"] == 1

        patched = client.patch(f"/api/tasks/{sub.json()['id']}", json={"status": "completed"},
                               headers=people["alice"])
        assert patched.status_code == 200

        tree = client.get(f"/api/tasks/{task_id}", headers=people["alice"]).json()
        assert tree["status"] == "not-started"
        assert tree["subtasks"][0]["status"] == "completed"

    def test_validation_error_shape(self, client, people):
        response = client.post("/api/tasks", json={"name": "  "}, headers=people["alice"])

        assert response.status_code == 422
        assert response.json()["field"] == "name"

    def test_forbidden_and_not_found(self, client, people):
        task_id = client.post("/api/tasks", json={"name": "Temp"}, headers=people["alice"]).json()["id"]

        assert client.get(f"/api/tasks/{task_id}", headers=people["bob"]).status_code == 403
        assert client.delete(f"/api/tasks/{task_id}", headers=people["alice"]).status_code == 403
        assert client.delete(f"/api/tasks/{task_id}", headers=ADMIN).status_code == 204

        response = client.get(f"/api/tasks/{task_id}", headers=ADMIN)
        assert response.status_code == 404
        assert response.json()["detail"] == f"Task {task_id} not found"

    def test_list_with_query_filters(self, client, people):
        client.post("/api/tasks", json={"name": "Open"}, headers=people["alice"])
        done = client.post("/api/tasks", json={"name": "Done", "status": "completed"},
                           headers=people["alice"]).json()

        response = client.get("/api/tasks", params={"status": ["completed"]}, headers=people["alice"])

        assert [t["id"] for t in response.json()] == [done["id"]]

    def test_comments(self, client, people):
        task_id = client.post("/api/tasks", json={"name": "Launch"}, headers=people["alice"]).json()["id"]

        created = client.post(f"/api/tasks/{task_id}/comments", json={"content": "On it"},
                              headers=people["alice"])
        assert created.status_code == 201
        comment = created.json()
        assert comment["author"]["full_name"] == "Alice Smith"

        assert client.post(f"/api/tasks/{task_id}/comments", json={"content": " "},
                           headers=people["alice"]).status_code == 422
        assert client.get(f"/api/tasks/{task_id}/comments", headers=people["bob"]).status_code == 403
        assert client.patch(f"/api/tasks/comments/{comment['id']}", json={"content": "Mine now"},
                            headers=ADMIN).status_code == 403

        edited = client.patch(f"/api/tasks/comments/{comment['id']}", json={"content": "Done"},
                              headers=people["alice"])
        assert edited.json()["content"] == "Done"

        assert client.delete(f"/api/tasks/comments/{comment['id']}", headers=ADMIN).status_code == 204
        assert client.get(f"/api/tasks/{task_id}/comments", headers=people["alice"]).json() == []

    def test_dev_tasks_are_separate(self, client, people):
        dev = client.post("/api/dev-tasks", json={"name": "Fix login"}, headers=people["alice"]).json()

        assert client.get(f"/api/tasks/{dev['id']}", headers=people["alice"]).status_code == 404
        assert client.get(f"/api/dev-tasks/{dev['id']}", headers=people["alice"]).status_code == 200

    def test_bulk_and_analytics(self, client, people):
        ids = [
            client.post("/api/tasks", json={"name": f"T{i}"}, headers=ADMIN).json()["id"]
            for i in range(3)
        ]

        outcome = client.post("/api/tasks/bulk-update", json={"ids": ids, "status": "completed"}, headers=ADMIN)
        assert outcome.json()["success"] == 3

        analytics = client.get("/api/tasks/analytics", headers=ADMIN).json()
        assert analytics["total"] == 3
        assert analytics["completion_rate"] == 100.0

        deleted = client.post("/api/tasks/bulk-delete", json={"ids": ids[:2]}, headers=ADMIN)
        assert deleted.json() == {"success": 2, "failed": 0, "errors": []}

        assert client.get("/api/tasks/analytics", headers=people["manager"]).status_code == 403


# ==================== LEAVE, CREDENTIALS, NOTIFICATIONS ====================

class TestLeaveRoutes:

    def test_submit_and_approve(self, client, people):
        created = client.post("/api/leave-requests", json={
            "type": "annual", "start_date": "2030-01-06", "end_date": "2030-01-10", "reason": "Ski trip",
        }, headers=people["alice"])
        assert created.status_code == 201
        assert created.json()["days"] == 5
        request_id = created.json()["id"]

        assert client.post(f"/api/leave-requests/{request_id}/approve", headers=people["bob"]).status_code == 403

        approved = client.post(f"/api/leave-requests/{request_id}/approve", json={"approval_notes": "Have fun"},
                               headers=people["manager"])
        assert approved.json()["status"] == "approved"

        mine = client.get("/api/leave-requests", params={"view": "my"}, headers=people["alice"]).json()
        assert [r["id"] for r in mine] == [request_id]

        assert client.get("/api/leave-requests", params={"view": "all"}, headers=people["alice"]).status_code == 403


class TestCredentialRoutes:

    def test_masked_and_revealed(self, client, people):
        created = client.post("/api/credentials", json={
            "name": "GitHub", "password": "ghp_secret", "department": people["eng"],
        }, headers=ADMIN)
        assert created.status_code == 201
        body = created.json()
        assert body["has_password"] is True
        assert "ghp_secret" not in created.text

        listed = client.get("/api/credentials", headers=people["alice"]).json()
        assert [c["name"] for c in listed] == ["GitHub"]

        assert client.post(f"/api/credentials/{body['id']}/reveal", headers=people["alice"]).status_code == 403
        revealed = client.post(f"/api/credentials/{body['id']}/reveal", headers=ADMIN)
        assert revealed.json() == {"password": "ghp_secret"}


class TestNotificationRoutes:

    def test_assignment_reaches_inbox(self, client, people):
        client.post("/api/tasks", json={"name": "Prepare deck", "assigned_to": people["alice_id"]},
                    headers=people["manager"])

        # Delivery is detached from the request; poll briefly
        count = 0
        for _ in range(50):
            count = client.get("/api/notifications/unread-count", headers=people["alice"]).json()["count"]
            if count:
                break
            time.sleep(0.02)
        assert count == 1

        inbox = client.get("/api/notifications", headers=people["alice"]).json()
        assert inbox[0]["type"] == "task_assigned"

        marked = client.post("/api/notifications/read-all", headers=people["alice"]).json()
        assert marked == {"marked": 1}


class TestBackendUnavailable:

    def test_unconfigured_database(self, monkeypatch):
        monkeypatch.setattr(settings, "database_url", "")
        app = create_app(Database(""))

        with TestClient(app) as test_client:
            response = test_client.get("/api/tasks", headers=ADMIN)

        assert response.status_code == 503
        assert response.json()["detail"] == GENERIC_BACKEND_MESSAGE
