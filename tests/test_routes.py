"""
HTTP-level tests for the Family Budget API.

The application lifespan is not started (TestClient is not used as a context
manager), so no MongoDB connection is attempted; the global family manager is
pointed at the in-memory collection instead.
"""

from unittest.mock import AsyncMock, patch

from bson import ObjectId
from fastapi.testclient import TestClient
import pytest

from family_budget.database import db_manager
from family_budget.main import app


@pytest.fixture
def client(patched_family_manager):
    return TestClient(app)


def _register(client, name="Smith", password="secret1"):
    response = client.post("/auth/register", json={"name": name, "password": password})
    assert response.status_code == 201, response.text
    body = response.json()
    return body["family"]["id"], {"Authorization": f"Bearer {body['token']}"}


class TestAuthEndpoints:
    def test_register(self, client):
        response = client.post("/auth/register", json={"name": "Smith", "password": "secret1"})
        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["family"]["name"] == "Smith"
        assert ObjectId.is_valid(body["family"]["id"])

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Smith"},
            {"password": "secret1"},
            {"name": "S", "password": "secret1"},
            {"name": "Smith", "password": "123"},
        ],
    )
    def test_register_validation(self, client, payload):
        response = client.post("/auth/register", json=payload)
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_register_duplicate(self, client):
        _register(client)
        response = client.post("/auth/register", json={"name": "Smith", "password": "secret2"})
        assert response.status_code == 400
        assert response.json()["detail"] == {"error": "DUPLICATE_NAME", "message": "Family name already exists"}

    def test_malformed_body_is_bad_request(self, client):
        response = client.post("/auth/register", content=b"not json", headers={"Content-Type": "application/json"})
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

    def test_login(self, client):
        family_id, _ = _register(client)
        response = client.post("/auth/login", json={"name": "smith", "password": "secret1"})
        assert response.status_code == 200
        assert response.json()["family"] == {"id": family_id, "name": "Smith"}

    def test_login_failures_are_indistinguishable(self, client):
        _register(client)
        wrong_password = client.post("/auth/login", json={"name": "Smith", "password": "nope123"})
        unknown_family = client.post("/auth/login", json={"name": "Jones", "password": "secret1"})
        assert wrong_password.status_code == unknown_family.status_code == 401
        assert wrong_password.json() == unknown_family.json()

    def test_login_missing_fields(self, client):
        response = client.post("/auth/login", json={"name": "Smith"})
        assert response.status_code == 400


class TestFamilyEndpoints:
    def test_requires_token(self, client):
        family_id, _ = _register(client)
        response = client.get(f"/family/{family_id}")
        assert response.status_code == 401
        assert response.headers["www-authenticate"] == "Bearer"
        assert response.json()["detail"]["error"] == "AUTHENTICATION_FAILED"

    def test_rejects_invalid_token(self, client):
        family_id, _ = _register(client)
        response = client.get(f"/family/{family_id}", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_other_family_is_not_found(self, client):
        _, headers = _register(client, "Smith")
        other_id, _ = _register(client, "Jones")
        response = client.get(f"/family/{other_id}", headers=headers)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "FAMILY_NOT_FOUND"

    def test_get_new_family(self, client):
        family_id, headers = _register(client)
        response = client.get(f"/family/{family_id}", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == family_id
        assert body["members"] == []
        assert body["totalIncome"] == 0
        assert body["totalExpenses"] == 0
        assert "hashedPassword" not in body
        assert "hashed_password" not in body

    def test_household_scenario(self, client):
        family_id, headers = _register(client)

        response = client.post(
            f"/family/{family_id}/members", json={"name": "Alice", "isEarning": True, "salary": 5000}, headers=headers
        )
        assert response.status_code == 201
        alice_id = response.json()["members"][0]["id"]

        response = client.post(
            f"/family/{family_id}/members", json={"name": "Bob", "is_earning": False, "salary": 3000}, headers=headers
        )
        assert response.status_code == 201
        body = response.json()
        bob_id = body["members"][1]["id"]
        assert body["totalIncome"] == 5000

        response = client.post(
            f"/family/{family_id}/members/{alice_id}/expenses",
            json={"description": "Groceries", "amount": 120, "category": "Food"},
            headers=headers,
        )
        assert response.status_code == 201
        alice = response.json()["members"][0]
        assert alice["totalSpent"] == 120
        assert alice["expenses"][0]["category"] == "Food"
        assert alice["expenses"][0]["date"]

        response = client.put(
            f"/family/{family_id}/members/{bob_id}",
            json={"name": "Robert", "isEarning": True, "salary": 3000},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["totalIncome"] == 8000

        response = client.delete(f"/family/{family_id}/members/{alice_id}", headers=headers)
        assert response.status_code == 200
        body = response.json()
        assert [member["name"] for member in body["members"]] == ["Robert"]
        assert body["totalIncome"] == 3000
        assert body["totalExpenses"] == 0

    def test_invalid_category_does_not_change_family(self, client):
        family_id, headers = _register(client)
        member_id = client.post(
            f"/family/{family_id}/members", json={"name": "Alice"}, headers=headers
        ).json()["members"][0]["id"]

        response = client.post(
            f"/family/{family_id}/members/{member_id}/expenses",
            json={"description": "Trip", "amount": 100, "category": "Travel"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

        body = client.get(f"/family/{family_id}", headers=headers).json()
        assert body["members"][0]["expenses"] == []
        assert body["totalExpenses"] == 0

    def test_expense_overflowing_totals_is_bad_request(self, client):
        family_id, headers = _register(client)
        member_id = client.post(
            f"/family/{family_id}/members", json={"name": "Alice"}, headers=headers
        ).json()["members"][0]["id"]
        url = f"/family/{family_id}/members/{member_id}/expenses"
        expense = {"description": "Yacht", "amount": "1e308", "category": "Entertainment"}

        assert client.post(url, json=expense, headers=headers).status_code == 201
        response = client.post(url, json=expense, headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"]["error"] == "VALIDATION_ERROR"

        body = client.get(f"/family/{family_id}", headers=headers).json()
        assert body["totalExpenses"] == 1e308
        assert len(body["members"][0]["expenses"]) == 1

    def test_member_errors(self, client):
        family_id, headers = _register(client)
        response = client.post(f"/family/{family_id}/members", json={"name": "  "}, headers=headers)
        assert response.status_code == 400
        assert response.json()["detail"]["message"] == "Member name is required"

        missing = str(ObjectId())
        response = client.delete(f"/family/{family_id}/members/{missing}", headers=headers)
        assert response.status_code == 404
        assert response.json()["detail"]["error"] == "MEMBER_NOT_FOUND"

        response = client.post(
            f"/family/{family_id}/members/{missing}/expenses",
            json={"description": "Tea", "amount": 3, "category": "Food"},
            headers=headers,
        )
        assert response.status_code == 404


class TestSystemEndpoints:
    def test_health_ok(self, client):
        with patch.object(db_manager, "health_check", AsyncMock(return_value=True)):
            response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_health_unavailable(self, client):
        with patch.object(db_manager, "health_check", AsyncMock(return_value=False)):
            response = client.get("/health")
        assert response.status_code == 503

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
