"""HTTP API tests against a real SQLite file through FastAPI's TestClient."""

from datetime import date
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from applyflow.api.app import create_app
from applyflow.core.config import DatabaseConfig, Settings
from applyflow.pipeline import workflow

VACANCY = {
    "companyName": "Acme",
    "roleTitle": "Backend Engineer",
    "link": "https://acme.example/jobs/1",
    "source": "linkedin",
    "salaryRange": "100-120k",
}


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(database=DatabaseConfig(path=str(tmp_path / "api.db")))


@pytest.fixture
def client(settings: Settings):  # type: ignore[no-untyped-def]
    with TestClient(create_app(settings)) as c:
        yield c


def _headers(client: TestClient, email: str = "me@example.com") -> dict[str, str]:
    resp = client.post("/api/auth/signin", json={"email": email})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def _saved_application(client: TestClient, headers: dict[str, str]) -> dict:
    resp = client.post("/api/vacancies", json=VACANCY, headers=headers)
    assert resp.status_code == 201
    (app,) = client.get("/api/applications", headers=headers).json()
    return app


class TestAuth:
    def test_health(self, client: TestClient) -> None:
        assert client.get("/api/health").json() == {"ok": True}

    def test_signin_and_check(self, client: TestClient) -> None:
        resp = client.post("/api/auth/signin", json={"email": " Me@Example.com"})
        body = resp.json()
        assert body["user"]["email"] == "me@example.com"
        check = client.get(
            "/api/auth/check", headers={"Authorization": f"Bearer {body['token']}"},
        )
        assert check.json()["id"] == body["user"]["id"]

    def test_invalid_email(self, client: TestClient) -> None:
        resp = client.post("/api/auth/signin", json={"email": "nobody"})
        assert resp.status_code == 400
        assert resp.json() == {"error": "A valid email is required"}

    def test_missing_token(self, client: TestClient) -> None:
        resp = client.get("/api/applications")
        assert resp.status_code == 401
        assert resp.json() == {"error": "Missing Bearer token"}

    def test_unknown_token(self, client: TestClient) -> None:
        resp = client.get("/api/applications", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401
        assert resp.json() == {"error": "Invalid or expired session"}

    def test_signout(self, client: TestClient) -> None:
        headers = _headers(client)
        assert client.post("/api/auth/signout", headers=headers).json() == {"success": True}
        assert client.get("/api/auth/check", headers=headers).status_code == 401


class TestVacancies:
    def test_create_opens_saved_application(self, client: TestClient) -> None:
        headers = _headers(client)
        resp = client.post("/api/vacancies", json=VACANCY, headers=headers)
        assert resp.status_code == 201
        vacancy = resp.json()
        assert vacancy["companyName"] == "Acme"
        assert vacancy["salaryRange"] == "100-120k"

        (app,) = client.get("/api/applications", headers=headers).json()
        assert app["vacancyId"] == vacancy["id"]
        assert app["status"] == "saved"
        assert app["nextStep"] == "Review and apply to this vacancy"
        assert app["companyName"] == "Acme"

    def test_missing_required_fields(self, client: TestClient) -> None:
        resp = client.post(
            "/api/vacancies", json={"companyName": "Acme"}, headers=_headers(client),
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Company name, role title, and link are required"}

    def test_invalid_source(self, client: TestClient) -> None:
        resp = client.post(
            "/api/vacancies", json={**VACANCY, "source": "fax"}, headers=_headers(client),
        )
        assert resp.status_code == 400

    def test_update_and_delete(self, client: TestClient) -> None:
        headers = _headers(client)
        vacancy = client.post("/api/vacancies", json=VACANCY, headers=headers).json()
        url = f"/api/vacancies/{vacancy['id']}"

        updated = client.put(url, json={"roleTitle": "Staff Engineer"}, headers=headers).json()
        assert updated["roleTitle"] == "Staff Engineer"
        assert updated["companyName"] == "Acme"

        assert client.delete(url, headers=headers).json() == {"success": True}
        assert client.get(url, headers=headers).status_code == 404
        assert client.get("/api/applications", headers=headers).json() == []

    def test_other_user_gets_404(self, client: TestClient) -> None:
        vacancy = client.post("/api/vacancies", json=VACANCY, headers=_headers(client)).json()
        other = _headers(client, "other@example.com")
        resp = client.get(f"/api/vacancies/{vacancy['id']}", headers=other)
        assert resp.status_code == 404
        assert resp.json() == {"error": "Vacancy not found"}
        assert client.get("/api/vacancies", headers=other).json() == []


class TestStatusChange:
    def test_applied_sets_applied_date(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        resp = client.put(
            f"/api/applications/{app['id']}/status", json={"status": "applied"}, headers=headers,
        )
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "applied"
        assert body["appliedDate"] == date.today().isoformat()
        assert body["lastStatusChangeAt"] > app["lastStatusChangeAt"]

    def test_next_step_creates_todo(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        body = client.put(
            f"/api/applications/{app['id']}/status",
            json={"status": "interview", "nextStep": "Prepare portfolio", "nextStepDueDate": "2025-01-10"},
            headers=headers,
        ).json()
        assert body["nextStep"] == "Prepare portfolio"
        assert body["nextStepDueDate"] == "2025-01-10"
        assert body["appliedDate"] is None

        (todo,) = client.get(
            "/api/todos", params={"application_id": app["id"]}, headers=headers,
        ).json()
        assert todo["title"] == "Prepare portfolio"
        assert todo["description"] == "Complete next steps for interview status"
        assert todo["priority"] == "medium"
        assert todo["dueDate"] == "2025-01-10"
        assert todo["completed"] is False

    def test_empty_next_step_keeps_stored_one(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        body = client.put(
            f"/api/applications/{app['id']}/status",
            json={"status": "applied", "nextStep": ""},
            headers=headers,
        ).json()
        assert body["nextStep"] == "Review and apply to this vacancy"
        assert client.get("/api/todos", headers=headers).json() == []

    def test_unknown_status(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        resp = client.put(
            f"/api/applications/{app['id']}/status", json={"status": "archived"}, headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json() == {"error": "Valid status is required"}

    def test_missing_status(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        resp = client.put(f"/api/applications/{app['id']}/status", json={}, headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Valid status is required"}

    def test_bad_due_date(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        resp = client.put(
            f"/api/applications/{app['id']}/status",
            json={"status": "applied", "nextStepDueDate": "next week"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["error"].startswith("Invalid request")

    def test_other_user_cannot_move(self, client: TestClient) -> None:
        app = _saved_application(client, _headers(client))
        resp = client.put(
            f"/api/applications/{app['id']}/status",
            json={"status": "applied"},
            headers=_headers(client, "other@example.com"),
        )
        assert resp.status_code == 404
        assert resp.json() == {"error": "Application not found"}

    def test_next_step_endpoint(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        body = client.put(
            f"/api/applications/{app['id']}/next-step",
            json={"nextStepDueDate": "2030-01-01"},
            headers=headers,
        ).json()
        assert body["nextStepDueDate"] == "2030-01-01"
        assert body["nextStep"] == "Review and apply to this vacancy"
        assert body["status"] == "saved"


class TestTodos:
    def test_crud(self, client: TestClient) -> None:
        headers = _headers(client)
        todo = client.post(
            "/api/todos", json={"title": "Update CV", "priority": "high"}, headers=headers,
        ).json()
        assert todo["priority"] == "high"
        assert todo["applicationId"] is None

        done = client.put(
            f"/api/todos/{todo['id']}", json={"completed": True}, headers=headers,
        ).json()
        assert done["completed"] is True

        assert client.delete(f"/api/todos/{todo['id']}", headers=headers).json() == {"success": True}
        assert client.get("/api/todos", headers=headers).json() == []

    def test_title_required(self, client: TestClient) -> None:
        resp = client.post("/api/todos", json={"title": "  "}, headers=_headers(client))
        assert resp.status_code == 400
        assert resp.json() == {"error": "Title is required"}


class TestContacts:
    def test_create_and_filter(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        resp = client.post(
            "/api/contacts",
            json={"name": "Jane Doe", "role": "recruiter", "applicationId": app["id"]},
            headers=headers,
        )
        assert resp.status_code == 201
        (contact,) = client.get(
            "/api/contacts", params={"application_id": app["id"]}, headers=headers,
        ).json()
        assert contact["name"] == "Jane Doe"
        assert contact["role"] == "recruiter"


class TestReadViews:
    def test_analytics(self, client: TestClient) -> None:
        headers = _headers(client)
        _saved_application(client, headers)
        body = client.get("/api/analytics", headers=headers).json()
        assert body["totalApplications"] == 1
        assert body["stalledApplications"] == 0
        assert body["overdueReminders"] == 0
        assert body["statusDistribution"][0] == {"status": "saved", "count": 1}
        assert len(body["conversionMetrics"]) == 4
        assert body["conversionMetrics"][0]["conversion"] == 0.0

    def test_reminders(self, client: TestClient) -> None:
        headers = _headers(client)
        app = _saved_application(client, headers)
        client.put(
            f"/api/applications/{app['id']}/status",
            json={"status": "applied", "nextStep": "Call", "nextStepDueDate": "2000-01-01"},
            headers=headers,
        )
        body = client.get("/api/reminders", headers=headers).json()
        assert [a["id"] for a in body["overdue"]] == [app["id"]]
        assert body["today"] == []
        assert body["upcoming"] == []

    def test_unexpected_error_is_masked(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def boom(*args, **kwargs):  # type: ignore[no-untyped-def]
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(workflow, "list_applications", boom)
        with TestClient(create_app(settings), raise_server_exceptions=False) as client:
            resp = client.get("/api/applications", headers=_headers(client))
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal server error"}
