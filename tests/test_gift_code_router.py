import pytest

BASE = "/api/v1/gift-codes"

REWARD = {"kind": "currency", "currency": "gem", "amount": 100}


@pytest.fixture
def gift_code(client, admin_headers):
    res = client.post(
        BASE,
        json={"code": "SPRING2025", "title": "Spring event", "reward_payload": REWARD, "usage_limit": 10},
        headers=admin_headers,
    )
    assert res.status_code == 201
    return res.json()["data"]


def test_redeem_once(client, player_headers, gift_code):
    first = client.post(f"{BASE}/redeem", json={"code": "SPRING2025"}, headers=player_headers)
    second = client.post(f"{BASE}/redeem", json={"code": "SPRING2025"}, headers=player_headers)
    balance = client.get("/api/v1/wallet/balance", params={"currency": "gem"}, headers=player_headers)

    assert first.status_code == 200
    assert first.json()["data"]["redemption_seq"] == 1
    assert first.json()["data"]["grants"] == [REWARD]
    assert second.status_code == 409
    assert second.json()["error"]["code"] == "ALREADY_REDEEMED"
    assert balance.json()["data"]["balance"] == 100


def test_redeem_unknown_code(client, player_headers):
    res = client.post(f"{BASE}/redeem", json={"code": "NOPE"}, headers=player_headers)

    assert res.status_code == 404


def test_redeem_inactive_code(client, admin_headers, player_headers, gift_code):
    client.post(f"{BASE}/{gift_code['id']}/deactivate", headers=admin_headers)

    res = client.post(f"{BASE}/redeem", json={"code": "SPRING2025"}, headers=player_headers)

    assert res.status_code == 400
    assert res.json()["error"]["details"]["reason"] == "inactive"


def test_redeem_requires_player_token(client, admin_headers, gift_code):
    res = client.post(f"{BASE}/redeem", json={"code": "SPRING2025"}, headers=admin_headers)

    assert res.status_code == 401


def test_validate_does_not_consume(client, player_headers, operator_headers, gift_code):
    res = client.post(f"{BASE}/validate", json={"code": "SPRING2025"}, headers=player_headers)
    detail = client.get(f"{BASE}/{gift_code['id']}", headers=operator_headers)

    assert res.json()["data"] == {"valid": True, "reason": None}
    assert detail.json()["data"]["usage_count"] == 0


def test_redemption_history(client, player_headers, other_player_headers, operator_headers, gift_code):
    client.post(f"{BASE}/redeem", json={"code": "SPRING2025"}, headers=player_headers)
    client.post(f"{BASE}/redeem", json={"code": "SPRING2025"}, headers=other_player_headers)

    mine = client.get(f"{BASE}/my-redemptions", headers=player_headers).json()
    admin_view = client.get(f"{BASE}/{gift_code['id']}/redemptions", headers=operator_headers).json()
    stats = client.get(f"{BASE}/stats", headers=operator_headers).json()

    assert mine["meta"]["total_count"] == 1
    assert mine["data"][0]["user_id"] == "user-1"
    assert admin_view["meta"]["total_count"] == 2
    assert stats["data"]["total_redemptions"] == 2


def test_operator_cannot_create(client, operator_headers):
    res = client.post(BASE, json={"reward_payload": REWARD}, headers=operator_headers)

    assert res.status_code == 403


def test_invalid_payload_rejected(client, admin_headers):
    res = client.post(
        BASE, json={"reward_payload": {"kind": "coupon"}}, headers=admin_headers
    )

    assert res.status_code == 422


def test_create_accepts_mixed_naive_and_aware_window(client, admin_headers):
    res = client.post(
        BASE,
        json={
            "code": "WINTER2030",
            "reward_payload": REWARD,
            "valid_from": "2030-01-01T00:00:00",
            "valid_until": "2030-02-01T00:00:00Z",
        },
        headers=admin_headers,
    )

    assert res.status_code == 201
    assert res.json()["data"]["valid_from"].startswith("2030-01-01T00:00:00")
    assert res.json()["data"]["valid_until"].startswith("2030-02-01T00:00:00")


def test_create_rejects_inverted_mixed_window(client, admin_headers):
    res = client.post(
        BASE,
        json={
            "reward_payload": REWARD,
            "valid_from": "2030-02-01T09:00:00+09:00",
            "valid_until": "2030-01-31T23:59:00",
        },
        headers=admin_headers,
    )

    assert res.status_code == 422
    assert res.json()["error"]["code"] == "INVALID_ARGUMENT"


@pytest.mark.parametrize("field", ["per_user_limit", "title", "reward_payload"])
def test_update_rejects_null_for_required_field(client, admin_headers, gift_code, field):
    res = client.put(f"{BASE}/{gift_code['id']}", json={field: None}, headers=admin_headers)

    assert res.status_code == 422
    assert res.json()["error"]["details"]["fields"] == [field]


def test_update_allows_clearing_usage_limit(client, admin_headers, gift_code):
    res = client.put(f"{BASE}/{gift_code['id']}", json={"usage_limit": None}, headers=admin_headers)

    assert res.status_code == 200
    assert res.json()["data"]["usage_limit"] is None
