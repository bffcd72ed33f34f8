from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from auth import issue_token, verify_token
from errors import AuthenticationError
from main import app, get_db
from recurrence import local_today
from services import STORE_ERROR_MESSAGE


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _auth(user_id: str = "user-1") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def _create_category(client, name="Food", type="EXPENSE"):
    response = client.post(
        "/category",
        json={"name": name, "type": type, "color": "#f00", "icon": "bowl"},
        headers=_auth(),
    )
    assert response.status_code == 201
    return response.json()


def test_token_round_trip_and_tampering():
    token = issue_token("abc")
    assert verify_token(token) == "abc"
    with pytest.raises(AuthenticationError):
        verify_token(token + "x")
    with pytest.raises(AuthenticationError):
        verify_token("")


def test_requests_without_token_are_rejected(client):
    assert client.get("/category").status_code == 401
    response = client.get("/category", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401


def test_category_listing_carries_pagination_headers(client):
    for name in ("A", "B", "C"):
        _create_category(client, name)

    response = client.get("/category?page=1&perPage=2", headers=_auth())

    assert response.status_code == 200
    assert [c["name"] for c in response.json()] == ["A", "B"]
    assert response.headers["x-total-count"] == "3"
    assert response.headers["x-current-page"] == "1"
    assert response.headers["x-per-page"] == "2"
    assert response.headers["x-total-pages"] == "2"


def test_transaction_flow_and_reports(client):
    category = _create_category(client)
    salary = _create_category(client, "Salary", "INCOME")
    rows = [
        ("INCOME", "1000", "2024-01-15", salary["id"]),
        ("EXPENSE", "300", "2024-01-20", category["id"]),
        ("EXPENSE", "200", "2024-02-05", category["id"]),
    ]
    for txn_type, amount, when, category_id in rows:
        response = client.post(
            "/transaction",
            json={
                "type": txn_type,
                "description": "seed",
                "categoryId": category_id,
                "date": when,
                "account": "Checking",
                "amount": amount,
            },
            headers=_auth(),
        )
        assert response.status_code == 201

    listing = client.get("/transaction?sort=desc&type=expense", headers=_auth())
    assert [t["date"] for t in listing.json()] == ["2024-02-05", "2024-01-20"]
    assert listing.headers["x-total-count"] == "2"

    params = "period__gte=2024-01-01&period__lte=2024-02-28"
    monthly = client.get(f"/reports/monthly?{params}", headers=_auth())
    summary = client.get(f"/reports/summary?{params}", headers=_auth())
    categories = client.get(f"/reports/categories?{params}&limit=5", headers=_auth())

    assert monthly.json() == [
        {"name": "Jan/2024", "income": 1000.0, "expense": 300.0},
        {"name": "Fev/2024", "income": 0.0, "expense": 200.0},
    ]
    assert summary.json() == {"income": 1000.0, "expense": 500.0, "balance": 500.0}
    assert categories.json() == [{"name": "Food", "value": 500.0, "fill": "#f00"}]


def test_reports_validate_period(client):
    response = client.get(
        "/reports/summary?period__gte=2024-02-01&period__lte=2024-01-01",
        headers=_auth(),
    )
    assert response.status_code == 400
    assert response.json()["field"] == "period__gte"


def test_category_delete_blocked_returns_400(client):
    category = _create_category(client)
    client.post(
        "/transaction",
        json={
            "type": "EXPENSE",
            "description": "Lunch",
            "categoryId": category["id"],
            "date": "2024-01-05",
            "account": "Card",
            "amount": 12.5,
        },
        headers=_auth(),
    )

    response = client.delete(f"/category/{category['id']}", headers=_auth())

    assert response.status_code == 400
    assert "1 transaction" in response.json()["detail"]
    assert client.get(f"/category/{category['id']}", headers=_auth()).status_code == 200


def test_budget_and_goal_endpoints(client):
    category = _create_category(client)
    client.post(
        "/transaction",
        json={
            "type": "EXPENSE",
            "description": "Market",
            "categoryId": category["id"],
            "date": "2024-03-10",
            "account": "Card",
            "amount": "150",
        },
        headers=_auth(),
    )

    budget = client.post(
        "/budget",
        json={"categoryId": category["id"], "limit": 500, "date": "2024-03-01"},
        headers=_auth(),
    )
    assert budget.status_code == 201
    assert budget.json()["spent"] == "150.00"

    deadline = (local_today() + timedelta(days=10)).isoformat()
    goal = client.post(
        "/goal",
        json={
            "categoryId": category["id"],
            "title": "Emergency fund",
            "targetAmount": 1000,
            "deadline": deadline,
        },
        headers=_auth(),
    )
    assert goal.status_code == 201
    assert goal.json()["targetAmount"] == 1000.0

    past = client.post(
        "/goal",
        json={
            "categoryId": category["id"],
            "title": "Late",
            "deadline": local_today().isoformat(),
        },
        headers=_auth(),
    )
    assert past.status_code == 400
    assert past.json()["field"] == "deadline"


def test_missing_rows_are_404_and_scoped_per_user(client):
    category = _create_category(client)
    assert client.get("/transaction/999", headers=_auth()).status_code == 404
    assert (
        client.get(f"/category/{category['id']}", headers=_auth("user-2")).status_code
        == 404
    )


def test_import_endpoint(client):
    response = client.post(
        "/transaction/import",
        json=[
            {"type": "EXPENSE", "description": "PIX", "date": "2024-04-01", "amount": 9.99},
            {"type": "INCOME", "description": "TED", "date": "2024-04-02", "amount": 50},
        ],
        headers=_auth(),
    )
    assert response.status_code == 201
    assert response.json() == {"count": 2}


def test_invalid_body_is_400_with_field(client):
    category = _create_category(client)
    response = client.post(
        "/transaction",
        json={
            "type": "EXPENSE",
            "description": "Refund?",
            "categoryId": category["id"],
            "date": "2024-01-05",
            "account": "Card",
            "amount": -5,
        },
        headers=_auth(),
    )
    assert response.status_code == 400
    assert response.json()["field"] == "amount"


class FailingSession:
    async def scalar(self, stmt):
        raise OperationalError("SELECT 1", {}, Exception("database is locked"))


def test_store_failure_returns_generic_500(client):
    async def failing_db():
        yield FailingSession()

    app.dependency_overrides[get_db] = failing_db
    try:
        response = client.get("/category/1", headers=_auth())
    finally:
        app.dependency_overrides.pop(get_db, None)

    assert response.status_code == 500
    assert response.json() == {"detail": STORE_ERROR_MESSAGE}
    assert "locked" not in response.text
