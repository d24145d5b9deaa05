import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from .. import __version__
from ..core import db
from ..core.db import create_engine_for_url, get_session, init_db, set_engine
from ..main import app
from ..models import UserModel

PIN = "1234"


@pytest.fixture
def client(tmp_path) -> TestClient:
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'test.db'}")
    original_engine = db.engine
    set_engine(engine)
    init_db(engine)

    def _get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session_override

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    set_engine(original_engine)
    engine.dispose()


@pytest.fixture
def user_id(client: TestClient) -> str:
    with Session(db.engine) as session:
        user = UserModel(full_name="Dawit Alemu")
        session.add(user)
        session.commit()
        return str(user.id)


def _open(client: TestClient, user_id: str, number: str, balance: int = 0) -> dict:
    response = client.post(
        "/accounts",
        json={"account_number": number, "initial_balance": str(balance)},
        headers={"X-User-Id": user_id},
    )
    assert response.status_code == 201
    return response.json()


def test_create_account_deposit_withdraw(client: TestClient, user_id: str) -> None:
    account = _open(client, user_id, "ACC-1")
    assert account["status"] == "ACTIVE"
    assert account["account_type"] == "SAVINGS"

    deposit = client.post(
        "/accounts/deposit",
        json={"account_number": "ACC-1", "amount": "1000", "pin": PIN},
        headers={"Idempotency-Key": str(uuid.uuid4())},
    )
    assert deposit.status_code == 200
    assert Decimal(deposit.json()["account"]["balance"]) == Decimal("1000")
    assert deposit.json()["entry"]["transaction_type"] == "DEPOSIT"

    withdraw = client.post(
        "/accounts/withdraw",
        json={"account_number": "ACC-1", "amount": "400", "pin": PIN},
    )
    assert withdraw.status_code == 200
    assert Decimal(withdraw.json()["account"]["balance"]) == Decimal("600")


def test_create_account_for_unknown_user(client: TestClient) -> None:
    response = client.post(
        "/accounts",
        json={"account_number": "ACC-1"},
        headers={"X-User-Id": str(uuid.uuid4())},
    )
    assert response.status_code == 404
    assert response.json()["kind"] == "not_found"


def test_duplicate_account_number_conflicts(client: TestClient, user_id: str) -> None:
    _open(client, user_id, "ACC-1")

    response = client.post(
        "/accounts",
        json={"account_number": "ACC-1"},
        headers={"X-User-Id": user_id},
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "conflict"


def test_withdraw_insufficient_funds(client: TestClient, user_id: str) -> None:
    _open(client, user_id, "ACC-1")

    response = client.post(
        "/accounts/withdraw",
        json={"account_number": "ACC-1", "amount": "1", "pin": PIN},
    )
    assert response.status_code == 409
    assert response.json()["kind"] == "insufficient_balance"
    assert response.json()["retryable"] is False


def test_missing_pin_is_unauthorized(client: TestClient, user_id: str) -> None:
    _open(client, user_id, "ACC-1")

    response = client.post("/accounts/deposit", json={"account_number": "ACC-1", "amount": "5"})
    assert response.status_code == 401


def test_non_positive_amount_is_bad_request(client: TestClient, user_id: str) -> None:
    _open(client, user_id, "ACC-1")

    response = client.post(
        "/accounts/deposit",
        json={"account_number": "ACC-1", "amount": "0", "pin": PIN},
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Deposit amount must be greater than zero."


def test_transfer_creates_two_entries(client: TestClient, user_id: str) -> None:
    source = _open(client, user_id, "ACC-1", 2000)
    dest = _open(client, user_id, "ACC-2")

    transfer = client.post(
        "/accounts/transfer",
        json={
            "from_account_id": source["id"],
            "to_account_number": "ACC-2",
            "amount": "750",
            "pin": PIN,
        },
    )
    assert transfer.status_code == 200
    payload = transfer.json()
    assert Decimal(payload["source"]["balance"]) == Decimal("1250")
    assert Decimal(payload["destination"]["balance"]) == Decimal("750")
    assert payload["transfer_out"]["related_account_id"] == dest["id"]
    assert payload["transfer_in"]["related_account_id"] == source["id"]


def test_transfer_rejects_self_transfer(client: TestClient, user_id: str) -> None:
    account = _open(client, user_id, "ACC-1", 500)

    response = client.post(
        "/accounts/transfer",
        json={
            "from_account_id": account["id"],
            "to_account_number": "ACC-1",
            "amount": "100",
            "pin": PIN,
        },
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot transfer to the same account."


def test_deposit_idempotency(client: TestClient, user_id: str) -> None:
    account = _open(client, user_id, "ACC-1")
    key = str(uuid.uuid4())
    body = {"account_number": "ACC-1", "amount": "500", "pin": PIN}

    first = client.post("/accounts/deposit", json=body, headers={"Idempotency-Key": key})
    second = client.post("/accounts/deposit", json=body, headers={"Idempotency-Key": key})

    assert first.status_code == 200
    assert second.status_code == 200
    assert first.json() == second.json()
    snapshot = client.get(f"/accounts/{account['id']}")
    assert Decimal(snapshot.json()["balance"]) == Decimal("500")


def test_transactions_pagination(client: TestClient, user_id: str) -> None:
    account = _open(client, user_id, "ACC-1")

    for amount in (100, 200, 300):
        client.post(
            "/accounts/deposit",
            json={"account_number": "ACC-1", "amount": str(amount), "pin": PIN},
        )

    first_page = client.get(
        f"/accounts/{account['id']}/transactions", params={"page_size": 2}
    )
    assert first_page.status_code == 200
    body = first_page.json()
    assert body["total"] == 3
    assert len(body["items"]) == 2
    assert {item["transaction_type"] for item in body["items"]} == {"DEPOSIT"}

    second_page = client.get(
        f"/accounts/{account['id']}/transactions", params={"page_size": 2, "page": 2}
    )
    assert len(second_page.json()["items"]) == 1

    bad_page = client.get(f"/accounts/{account['id']}/transactions", params={"page": 0})
    assert bad_page.status_code == 400


def test_freeze_unfreeze_close_and_delete(client: TestClient, user_id: str) -> None:
    account = _open(client, user_id, "ACC-1")
    account_id = account["id"]

    frozen = client.put(f"/accounts/{account_id}/freeze", json={"reason": "review"})
    assert frozen.json()["status"] == "FROZEN"

    blocked = client.post(
        "/accounts/deposit",
        json={"account_number": "ACC-1", "amount": "5", "pin": PIN},
    )
    assert blocked.status_code == 409
    assert blocked.json()["kind"] == "inactive_account"

    assert client.put(f"/accounts/{account_id}/close").status_code == 409
    assert client.put(f"/accounts/{account_id}/unfreeze").json()["status"] == "ACTIVE"
    assert client.put(f"/accounts/{account_id}/close").json()["status"] == "CLOSED"

    assert client.delete(f"/accounts/{account_id}").status_code == 204
    assert client.get(f"/accounts/{account_id}").status_code == 404


def test_lookup_by_number_and_user(client: TestClient, user_id: str) -> None:
    account = _open(client, user_id, "ACC-1")

    by_number = client.get("/accounts/by-number/ACC-1")
    assert by_number.json()["id"] == account["id"]

    owned = client.get(f"/users/{user_id}/accounts")
    assert [a["account_number"] for a in owned.json()] == ["ACC-1"]

    retyped = client.put(f"/accounts/{account['id']}", json={"account_type": "BUSINESS"})
    assert retyped.json()["account_type"] == "BUSINESS"


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok", "version": __version__}
