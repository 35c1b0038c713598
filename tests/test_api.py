"""End-to-end tests for the REST API."""

import pytest
from fastapi.testclient import TestClient

from api import app, get_uow, status_for
from errors import DomainError, ErrorKind, ErrorReason
from infrastructure import InMemoryUnitOfWork
from ports import StorageError

BASE = "/api/v1"


@pytest.fixture
def client(db):
    app.dependency_overrides[get_uow] = lambda: InMemoryUnitOfWork(db)
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, path, body):
    response = client.post(f"{BASE}{path}", json=body)
    assert response.status_code == 201, response.text
    return response.json()["data"]


@pytest.fixture
def manager_id(client):
    return _create(client, "/users", {"username": "mona", "role": "manager"})["id"]


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestStatusMapping:
    @pytest.mark.parametrize(
        "error, code",
        [
            (DomainError.not_found("project", 1), 404),
            (DomainError.validation("name", "blank", "name must not be blank."), 422),
            (DomainError.update(ErrorReason.INVALID_FIELD, "bad"), 422),
            (DomainError.creation(ErrorReason.DUPLICATE_NAME, "taken"), 409),
            (DomainError.storage_failure(ErrorKind.RETRIEVAL, "lost"), 503),
        ],
    )
    def test_status_for(self, error, code):
        assert status_for(error) == code
        assert type(status_for(error)) is int


class TestUsers:
    """Test cases for the /users endpoints."""

    def test_create_and_get(self, client):
        user = _create(client, "/users", {"username": "erik", "email": "erik@example.com"})
        assert user["role"] == "employee"

        response = client.get(f"{BASE}/users/{user['id']}")
        assert response.json()["data"]["email"] == "erik@example.com"

        response = client.get(f"{BASE}/users/by-username/erik")
        assert response.json()["data"]["id"] == user["id"]

    def test_duplicate_username_is_conflict(self, client, manager_id):
        response = client.post(f"{BASE}/users", json={"username": "mona"})
        assert response.status_code == 409
        assert response.json()["reason"] == "duplicate_name"

    def test_invalid_username_is_unprocessable(self, client):
        response = client.post(f"{BASE}/users", json={"username": "mona lisa"})
        assert response.status_code == 422
        assert response.json()["kind"] == "creation"

    def test_invalid_email_is_unprocessable(self, client):
        response = client.post(f"{BASE}/users", json={"username": "erik", "email": "nope"})
        assert response.status_code == 422

    def test_employees_only(self, client, manager_id):
        _create(client, "/users", {"username": "erik"})
        response = client.get(f"{BASE}/users", params={"employees_only": True})
        assert [u["username"] for u in response.json()["data"]] == ["erik"]

    def test_rename_onto_taken_username_is_conflict(self, client, manager_id):
        erik = _create(client, "/users", {"username": "erik"})
        response = client.patch(f"{BASE}/users/{erik['id']}", json={"username": "mona"})
        assert response.status_code == 409

    def test_delete(self, client, manager_id):
        assert client.delete(f"{BASE}/users/{manager_id}").status_code == 204
        response = client.get(f"{BASE}/users/{manager_id}")
        assert response.status_code == 404
        assert response.json()["kind"] == "not_found"


class TestProjects:
    """Test cases for project CRUD over HTTP."""

    def test_create_project(self, client, manager_id):
        project = _create(client, "/projects", {"name": "Alpha", "manager_id": manager_id})
        assert project["status"] == "not_started"
        assert project["completed_at"] is None

    def test_unknown_manager_is_not_found(self, client):
        response = client.post(f"{BASE}/projects", json={"name": "Alpha", "manager_id": 42})
        assert response.status_code == 404

    def test_duplicate_name_ignores_case(self, client):
        _create(client, "/projects", {"name": "Alpha"})
        response = client.post(f"{BASE}/projects", json={"name": "ALPHA"})
        assert response.status_code == 409
        assert response.json()["kind"] == "creation"

    def test_blank_name_is_unprocessable(self, client):
        response = client.post(f"{BASE}/projects", json={"name": "   "})
        assert response.status_code == 422
        assert response.json()["reason"] == "invalid_field"

    def test_completion_stamped_and_cleared(self, client):
        """Test completed_at follows the status through PATCH requests."""
        project = _create(client, "/projects", {"name": "Alpha"})
        url = f"{BASE}/projects/{project['id']}"

        done = client.patch(url, json={"status": "completed"}).json()["data"]
        assert done["completed_at"] is not None

        renamed = client.patch(url, json={"name": "Alpha v2"}).json()["data"]
        assert renamed["completed_at"] == done["completed_at"]

        reopened = client.patch(url, json={"status": "in_progress"}).json()["data"]
        assert reopened["completed_at"] is None

    def test_missing_project_is_not_found(self, client):
        response = client.get(f"{BASE}/projects/99")
        assert response.status_code == 404
        assert response.json()["detail"] == 'project "99" not found'

    def test_delete(self, client):
        project = _create(client, "/projects", {"name": "Alpha"})
        assert client.delete(f"{BASE}/projects/{project['id']}").status_code == 204
        assert client.delete(f"{BASE}/projects/{project['id']}").status_code == 404

    def test_patch_null_clears_optional_fields(self, client, manager_id):
        """Test an explicit null clears a field while omitted fields are kept."""
        project = _create(
            client,
            "/projects",
            {"name": "Alpha", "manager_id": manager_id, "deadline": "2026-12-31"},
        )
        url = f"{BASE}/projects/{project['id']}"

        renamed = client.patch(url, json={"name": "Alpha v2"}).json()["data"]
        assert renamed["manager_id"] == manager_id
        assert renamed["deadline"] == "2026-12-31"

        cleared = client.patch(url, json={"manager_id": None, "deadline": None}).json()["data"]
        assert cleared["manager_id"] is None
        assert cleared["deadline"] is None
        assert cleared["name"] == "Alpha v2"

    @pytest.mark.parametrize("field", ["name", "status"])
    def test_patch_null_required_field_is_unprocessable(self, client, field):
        project = _create(client, "/projects", {"name": "Alpha"})
        response = client.patch(f"{BASE}/projects/{project['id']}", json={field: None})
        assert response.status_code == 422
        assert response.json()["reason"] == "invalid_field"


class TestRollups:
    """Test cases for progress, hours and detail views over HTTP."""

    @pytest.fixture
    def setup(self, client, manager_id):
        erik = _create(client, "/users", {"username": "erik"})
        project = _create(client, "/projects", {"name": "Alpha", "manager_id": manager_id})
        _create(client, "/projects", {"name": "Beta"})
        pid = project["id"]
        m1 = _create(client, f"/projects/{pid}/milestones", {"name": "Design"})
        m2 = _create(client, f"/projects/{pid}/milestones", {"name": "Build"})
        m3 = _create(client, f"/projects/{pid}/milestones", {"name": "Ship"})
        task = _create(
            client,
            f"/milestones/{m1['id']}/tasks",
            {"name": "Sketch", "estimated_hours": 10, "coworker_ids": [erik["id"]]},
        )
        _create(client, f"/milestones/{m2['id']}/tasks", {"name": "Code", "estimated_hours": 30})
        return {
            "project_id": pid,
            "milestones": [m1["id"], m2["id"], m3["id"]],
            "task_id": task["id"],
            "erik_id": erik["id"],
        }

    def test_progress_rounds_to_whole_percent(self, client, setup):
        pid = setup["project_id"]
        url = f"{BASE}/milestones/{setup['milestones'][0]}/status"
        assert client.patch(url, json={"status": "completed"}).status_code == 200

        response = client.get(f"{BASE}/projects/{pid}/progress")
        assert response.json()["data"] == {"project_id": pid, "progress": 33}

    def test_progress_of_missing_project_is_not_found(self, client):
        assert client.get(f"{BASE}/projects/5/progress").status_code == 404

    def test_hours(self, client, setup):
        client.patch(f"{BASE}/tasks/{setup['task_id']}/hours", json={"actual_hours_used": 12})
        data = client.get(f"{BASE}/projects/{setup['project_id']}/hours").json()["data"]
        assert data["estimated_hours"] == 40
        assert data["actual_hours_used"] == 12

    def test_negative_hours_rejected(self, client, setup):
        response = client.patch(
            f"{BASE}/tasks/{setup['task_id']}/hours", json={"actual_hours_used": -1}
        )
        assert response.status_code == 422

    def test_project_detail(self, client, setup):
        data = client.get(f"{BASE}/projects/{setup['project_id']}/details").json()["data"]
        assert [m["name"] for m in data["milestones"]] == ["Design", "Build", "Ship"]
        assert data["milestones"][0]["tasks"][0]["coworker_ids"] == [setup["erik_id"]]
        assert data["progress"] == 0

    def test_details_by_employee(self, client, setup):
        response = client.get(f"{BASE}/projects/details", params={"employee_id": setup["erik_id"]})
        assert [d["name"] for d in response.json()["data"]] == ["Alpha"]

    def test_details_by_scope(self, client, setup):
        for mid in setup["milestones"]:
            client.patch(f"{BASE}/milestones/{mid}/status", json={"status": "completed"})

        finished = client.get(f"{BASE}/projects/details", params={"scope": "finished"})
        ongoing = client.get(f"{BASE}/projects/details", params={"scope": "ongoing"})
        # Alpha is fully done but its own status was never set to completed
        assert finished.json()["data"] == []
        assert [d["name"] for d in ongoing.json()["data"]] == ["Alpha", "Beta"]
        assert ongoing.json()["data"][0]["progress"] == 100

    def test_milestones_by_scope(self, client, setup):
        client.patch(
            f"{BASE}/milestones/{setup['milestones'][1]}/status", json={"status": "completed"}
        )
        url = f"{BASE}/projects/{setup['project_id']}/milestones"
        finished = client.get(url, params={"scope": "finished"}).json()["data"]
        ongoing = client.get(url, params={"scope": "ongoing"}).json()["data"]
        assert [m["name"] for m in finished] == ["Build"]
        assert [m["name"] for m in ongoing] == ["Design", "Ship"]

    def test_assign_coworker(self, client, setup):
        task_id = setup["task_id"]
        response = client.post(
            f"{BASE}/tasks/{task_id}/coworkers", json={"user_id": setup["erik_id"]}
        )
        assert response.status_code == 200
        assert response.json()["data"]["coworker_ids"] == [setup["erik_id"]]

        response = client.post(f"{BASE}/tasks/{task_id}/coworkers", json={"user_id": 404})
        assert response.status_code == 404


class _UnreachableProjects:
    """A project repository whose every call fails."""

    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise StorageError(f"{name} failed")
        return fail


class TestStorageFailures:
    """Test cases for storage faults surfacing over HTTP."""

    @pytest.fixture
    def broken_client(self, db):
        def broken_uow():
            uow = InMemoryUnitOfWork(db)
            uow.projects = _UnreachableProjects()
            return uow

        app.dependency_overrides[get_uow] = broken_uow
        yield TestClient(app)
        app.dependency_overrides.clear()

    @pytest.mark.parametrize("path", ["/projects", "/projects/1", "/projects/details"])
    def test_read_fault_is_service_unavailable(self, broken_client, path):
        response = broken_client.get(f"{BASE}{path}")
        assert response.status_code == 503
        body = response.json()
        assert set(body) == {"detail", "kind", "reason"}
        assert body["kind"] == "retrieval"
        assert body["reason"] == "persistence_failure"

    def test_write_fault_keeps_operation_kind(self, broken_client):
        response = broken_client.post(f"{BASE}/projects", json={"name": "Alpha"})
        assert response.status_code == 503
        assert response.json()["kind"] == "creation"
