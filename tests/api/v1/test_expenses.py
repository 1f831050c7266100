from decimal import Decimal

import pytest

from splitcost.api.v1.deps import get_expense_service, get_ledger
from splitcost.core.auth import get_current_user_id
from splitcost.core.errors import StoreUnavailable
from splitcost.main import app


@pytest.fixture
def as_user(expense_service, ledger):
    """Authenticate requests as ``u1`` and back the routes with in-memory fakes."""
    app.dependency_overrides[get_current_user_id] = lambda: "u1"
    app.dependency_overrides[get_expense_service] = lambda: expense_service
    app.dependency_overrides[get_ledger] = lambda: ledger
    return "u1"


DINNER = {
    "description": "Dinner",
    "amount": "60.00",
    "splits": [{"participant_id": "u1"}, {"participant_id": "u2"}, {"participant_id": "u3"}],
}


def test_create_expense(client, as_user):
    response = client.post("/api/v1/expenses", json=DINNER)

    assert response.status_code == 201
    data = response.json()
    assert data["payer_id"] == "u1"
    assert data["version"] == 1
    assert [Decimal(s["owed_amount"]) for s in data["splits"]] == [Decimal("20.00")] * 3


def test_balances_follow_expense(client, as_user):
    client.post("/api/v1/expenses", json=DINNER)

    response = client.get("/api/v1/balances")

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["total_owed"]) == Decimal("40.00")
    assert Decimal(data["net_balance"]) == Decimal("40.00")


def test_invalid_splits_are_bad_request(client, as_user):
    payload = dict(DINNER, split_method="exact", splits=[{"participant_id": "u2", "amount": "10"}])

    response = client.post("/api/v1/expenses", json=payload)

    assert response.status_code == 400


def test_missing_expense_is_not_found(client, as_user):
    assert client.get("/api/v1/expenses/nope").status_code == 404


def test_delete_twice_conflicts(client, as_user):
    expense_id = client.post("/api/v1/expenses", json=DINNER).json()["id"]

    assert client.delete(f"/api/v1/expenses/{expense_id}").status_code == 200
    assert client.delete(f"/api/v1/expenses/{expense_id}").status_code == 409


def test_only_payer_or_creator_may_delete(client, as_user):
    expense_id = client.post("/api/v1/expenses", json=DINNER).json()["id"]
    app.dependency_overrides[get_current_user_id] = lambda: "u2"

    assert client.delete(f"/api/v1/expenses/{expense_id}").status_code == 403


def test_store_outage_is_service_unavailable(client, as_user, store):
    store.failures.append(StoreUnavailable("down"))

    response = client.post("/api/v1/expenses", json=DINNER)

    assert response.status_code == 503


def test_requires_bearer_token(client):
    assert client.get("/api/v1/balances").status_code in (401, 403)
