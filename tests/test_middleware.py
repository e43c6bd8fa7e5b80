def test_request_id_is_generated_and_echoed(client):
    res = client.get("/health")

    assert res.headers["X-Request-ID"]


def test_error_body_carries_caller_request_id(client):
    res = client.get("/api/v1/wallet/balance", headers={"X-Request-ID": "trace-abc"})

    assert res.status_code == 401
    assert res.headers["X-Request-ID"] == "trace-abc"
    assert res.json()["error"]["request_id"] == "trace-abc"
    assert res.json()["error"]["code"] == "AUTH_FAILED"


def test_unknown_route_uses_error_envelope(client):
    res = client.get("/api/v1/nope")

    assert res.status_code == 404
    assert res.json()["success"] is False
    assert res.json()["error"]["code"] == "HTTP_ERROR"
