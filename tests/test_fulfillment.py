import json

import httpx

from backoffice.config import settings
from backoffice.schemas.reward_payload import CurrencyGrant, ItemGrant
from backoffice.services.fulfillment import GameMailClient

GRANTS = [CurrencyGrant(currency="gold", amount=500), ItemGrant(item_id="sword_01", quantity=1, rarity=3)]


def make_client(handler, **overrides):
    return GameMailClient(settings.model_copy(update=overrides), transport=httpx.MockTransport(handler))


def test_delivers_mail_with_idempotency_key():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["headers"] = request.headers
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    client = make_client(handler, GAME_MAIL_API_KEY="mail-key")

    assert client.deliver("user-1", 3, "role-9", GRANTS, "key-00000001") is True
    assert captured["headers"]["Idempotency-Key"] == "key-00000001"
    assert captured["headers"]["Authorization"] == "Bearer mail-key"
    assert captured["body"] == {
        "id": "key-00000001",
        "serverid": 3,
        "owner": "role-9",
        "title": settings.PURCHASE_MAIL_TITLE,
        "content": settings.PURCHASE_MAIL_CONTENT,
        "items": [{"i": "gold", "n": 500}, {"i": "sword_01", "n": 1, "q": 3}],
        "sender": "backend",
    }


def test_owner_falls_back_to_user_id():
    bodies = []

    def handler(request: httpx.Request) -> httpx.Response:
        bodies.append(json.loads(request.content))
        return httpx.Response(201)

    assert make_client(handler).deliver("user-1", 1, None, GRANTS, "key-00000002") is True
    assert bodies[0]["owner"] == "user-1"


def test_server_error_is_failure():
    client = make_client(lambda request: httpx.Response(500, text="boom"))

    assert client.deliver("user-1", 1, None, GRANTS, "key-00000003") is False


def test_timeout_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    assert make_client(handler).deliver("user-1", 1, None, GRANTS, "key-00000004") is False


def test_connection_error_is_failure():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    assert make_client(handler).deliver("user-1", 1, None, GRANTS, "key-00000005") is False
