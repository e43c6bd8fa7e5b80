import pytest
from dependency_injector import providers

BASE = "/api/v1/shop"

ITEM = {
    "item_ref": "gem_chest",
    "name": "Gem Chest",
    "price_tokens": 150,
    "reward_payload": {
        "kind": "bundle",
        "grants": [
            {"kind": "currency", "currency": "gem", "amount": 300},
            {"kind": "item", "item_id": "key_01", "quantity": 1},
        ],
    },
    "stock_quantity": 10,
}


@pytest.fixture
def shop_item(client, admin_headers):
    res = client.post(f"{BASE}/admin/items", json=ITEM, headers=admin_headers)
    assert res.status_code == 201
    return res.json()["data"]


@pytest.fixture
def funded_player(client, admin_headers):
    res = client.post(
        "/api/v1/wallet/admin/adjust",
        json={"user_id": "user-1", "amount": 500, "reason": "test funding"},
        headers=admin_headers,
    )
    assert res.status_code == 200
    return "user-1"


def purchase(client, headers, key="order-key-0001", item_ref="gem_chest"):
    return client.post(
        f"{BASE}/purchase", json={"item_ref": item_ref, "idempotency_key": key}, headers=headers
    )


def balance(client, headers):
    return client.get("/api/v1/wallet/balance", headers=headers).json()["data"]["balance"]


def test_purchase_delivers_and_debits(client, player_headers, shop_item, funded_player, fake_fulfillment):
    res = purchase(client, player_headers)

    assert res.status_code == 200
    body = res.json()
    assert body["data"]["status"] == "delivered"
    assert body["data"]["price_tokens"] == 150
    assert balance(client, player_headers) == 350
    assert fake_fulfillment.calls[0]["role_id"] == "role-1"
    assert fake_fulfillment.calls[0]["server_id"] == 1


def test_purchase_replay_returns_same_result(client, player_headers, shop_item, funded_player, fake_fulfillment):
    first = purchase(client, player_headers).json()
    second = purchase(client, player_headers).json()

    assert first["data"] == second["data"]
    assert len(fake_fulfillment.calls) == 1
    assert balance(client, player_headers) == 350


def test_delivery_failure_returns_502_and_refunds(client, player_headers, shop_item, funded_player, fake_fulfillment):
    fake_fulfillment.succeed = False

    res = purchase(client, player_headers)
    mine = client.get(f"{BASE}/my-purchases", params={"status": "failed"}, headers=player_headers)

    assert res.status_code == 502
    assert res.json()["error"]["code"] == "UPSTREAM_FAILURE"
    assert balance(client, player_headers) == 500
    assert mine.json()["meta"]["total_count"] == 1


def test_insufficient_funds(client, player_headers, shop_item):
    res = purchase(client, player_headers)

    assert res.status_code == 400
    assert res.json()["error"]["code"] == "INSUFFICIENT_FUNDS"


def test_short_idempotency_key_rejected(client, player_headers, shop_item, funded_player):
    res = purchase(client, player_headers, key="abc")

    assert res.status_code == 422


def test_can_purchase(client, player_headers, shop_item, funded_player):
    res = client.get(f"{BASE}/items/gem_chest/can-purchase", headers=player_headers)

    assert res.json()["data"]["can_purchase"] is True
    assert res.json()["data"]["balance"] == 500


def test_deactivated_item_hidden_from_players(client, admin_headers, player_headers, shop_item):
    client.delete(f"{BASE}/admin/items/gem_chest", headers=admin_headers)

    listing = client.get(f"{BASE}/items", headers=player_headers)
    detail = client.get(f"{BASE}/items/gem_chest", headers=player_headers)
    admin_listing = client.get(f"{BASE}/admin/items", headers=admin_headers)

    assert listing.json()["data"] == []
    assert detail.status_code == 404
    assert admin_listing.json()["data"][0]["is_active"] is False


def test_admin_refund(client, admin_headers, player_headers, shop_item, funded_player):
    ref = purchase(client, player_headers).json()["data"]["transaction_ref"]

    refunded = client.post(f"{BASE}/admin/purchases/{ref}/refund", headers=admin_headers)
    again = client.post(f"{BASE}/admin/purchases/{ref}/refund", headers=admin_headers)
    stats = client.get(f"{BASE}/admin/stats", headers=admin_headers)

    assert refunded.status_code == 200
    assert refunded.json()["data"]["status"] == "refunded"
    assert again.status_code == 409
    assert balance(client, player_headers) == 500
    assert stats.json()["data"]["refunded_purchases"] == 1


def test_admin_endpoints_reject_player_token(client, player_headers):
    res = client.get(f"{BASE}/admin/stats", headers=player_headers)

    assert res.status_code == 401


@pytest.mark.parametrize(
    "payload,field",
    [
        ({"price_tokens": None}, "price_tokens"),
        ({"stock_quantity": None}, "stock_quantity"),
        ({"name": None}, "name"),
    ],
)
def test_update_item_rejects_null_for_required_field(client, admin_headers, shop_item, payload, field):
    res = client.put(f"{BASE}/admin/items/gem_chest", json=payload, headers=admin_headers)

    assert res.status_code == 422
    assert res.json()["error"]["details"]["fields"] == [field]


def test_update_item_allows_clearing_optional_limit(client, admin_headers, shop_item):
    res = client.put(
        f"{BASE}/admin/items/gem_chest", json={"daily_purchase_limit": None}, headers=admin_headers
    )

    assert res.status_code == 200
    assert res.json()["data"]["daily_purchase_limit"] is None


class RecordingCache:
    """삭제된 캐시 키만 기록하는 Redis 대역"""

    def __init__(self):
        self.deleted = []

    async def get(self, key):
        return None

    async def set(self, key, value, ttl_seconds):
        return False

    async def delete(self, key):
        self.deleted.append(key)
        return True

    async def close(self):
        return None


@pytest.fixture
def recording_cache(app):
    cache = RecordingCache()
    app.container.infrastructure.redis_service.override(providers.Object(cache))
    yield cache
    app.container.infrastructure.redis_service.reset_override()


def test_purchase_invalidates_prize_summary_cache(
    client, admin_headers, player_headers, shop_item, funded_player, recording_cache
):
    client.post(
        "/api/v1/prizes/settings",
        json={"server_id": 1, "initial_prize": 1000, "contribution_rate_percent": 10},
        headers=admin_headers,
    )
    recording_cache.deleted.clear()

    res = purchase(client, player_headers)
    summary = client.get("/api/v1/prizes/summary/1", headers=admin_headers)

    assert res.status_code == 200
    assert recording_cache.deleted == ["prize:summary:1"]
    assert summary.json()["data"]["pool"]["addon_prize"] == "15"
