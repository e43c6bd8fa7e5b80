import json

import pytest

from backoffice.services.payment_service import sign_payload

BASE = "/api/v1/payments"
SECRET = "test-webhook-secret"


@pytest.fixture
def package(client, admin_headers):
    res = client.post(
        f"{BASE}/admin/packages",
        json={"name": "Starter", "price": 4.99, "token_amount": 500, "bonus_tokens": 50},
        headers=admin_headers,
    )
    assert res.status_code == 201
    return res.json()["data"]


@pytest.fixture
def order(client, player_headers, package):
    res = client.post(f"{BASE}/orders", json={"package_id": package["id"]}, headers=player_headers)
    assert res.status_code == 201
    return res.json()["data"]


def send_webhook(client, payload: dict, signature=None):
    body = json.dumps(payload).encode()
    headers = {"Content-Type": "application/json"}
    headers["X-Signature"] = signature if signature is not None else sign_payload(SECRET, body)
    return client.post(f"{BASE}/webhook", content=body, headers=headers)


def test_package_listing(client, player_headers, package):
    res = client.get(f"{BASE}/packages", headers=player_headers)

    assert res.json()["data"][0]["price"] == "4.99"
    assert res.json()["data"][0]["token_amount"] == 500


def test_paid_webhook_credits_once(client, player_headers, order):
    payload = {"transaction_ref": order["transaction_ref"], "status": "paid", "event_id": "evt_1"}

    first = send_webhook(client, payload)
    second = send_webhook(client, payload)
    balance = client.get("/api/v1/wallet/balance", headers=player_headers).json()["data"]["balance"]
    detail = client.get(f"{BASE}/orders/{order['transaction_ref']}", headers=player_headers)

    assert first.json()["data"]["processed"] is True
    assert second.json()["data"]["processed"] is False
    assert balance == 550
    assert detail.json()["data"]["status"] == "completed"


def test_bad_signature_rejected(client, player_headers, order):
    payload = {"transaction_ref": order["transaction_ref"], "status": "paid"}

    res = send_webhook(client, payload, signature="0" * 64)
    balance = client.get("/api/v1/wallet/balance", headers=player_headers).json()["data"]["balance"]

    assert res.status_code == 401
    assert balance == 0


def test_other_players_order_hidden(client, other_player_headers, order):
    res = client.get(f"{BASE}/orders/{order['transaction_ref']}", headers=other_player_headers)

    assert res.status_code == 404


def test_admin_transaction_listing(client, operator_headers, order):
    res = client.get(f"{BASE}/admin/transactions", params={"status": "pending"}, headers=operator_headers)

    assert res.json()["meta"]["total_count"] == 1
    assert res.json()["data"][0]["tokens"] == 550
