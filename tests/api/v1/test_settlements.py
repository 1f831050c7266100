from decimal import Decimal

import pytest

from splitcost.api.v1.deps import get_ledger, get_settlement_service
from splitcost.core.auth import get_current_user_id
from splitcost.main import app


def act_as(user_id):
    app.dependency_overrides[get_current_user_id] = lambda: user_id


@pytest.fixture
def routes(settlement_service, ledger):
    app.dependency_overrides[get_settlement_service] = lambda: settlement_service
    app.dependency_overrides[get_ledger] = lambda: ledger


@pytest.mark.usefixtures("routes")
def test_confirm_flow(client, ledger):
    act_as("u2")
    created = client.post("/api/v1/settlements", json={"to_user_id": "u1", "amount": "20.00"})
    assert created.status_code == 201
    settlement_id = created.json()["id"]
    assert created.json()["status"] == "pending"

    # Payer cannot confirm their own payment
    assert client.post(f"/api/v1/settlements/{settlement_id}/confirm").status_code == 403

    act_as("u1")
    confirmed = client.post(f"/api/v1/settlements/{settlement_id}/confirm")
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "confirmed"
    assert client.post(f"/api/v1/settlements/{settlement_id}/confirm").status_code == 409

    balances = client.get("/api/v1/balances/friends/u2").json()
    assert Decimal(balances["total_balance"]) == Decimal("-20.00")


@pytest.mark.usefixtures("routes")
def test_self_payment_is_rejected(client):
    act_as("u1")

    response = client.post("/api/v1/settlements", json={"to_user_id": "u1", "amount": "5"})

    assert response.status_code == 400


@pytest.mark.usefixtures("routes")
def test_unknown_settlement_is_not_found(client):
    act_as("u1")

    assert client.post("/api/v1/settlements/missing/reject").status_code == 404
