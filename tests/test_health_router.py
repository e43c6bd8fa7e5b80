def test_health(client):
    res = client.get("/health")

    assert res.status_code == 200
    assert res.json()["status"] == "healthy"
    assert res.json()["database"] is True


def test_root(client):
    res = client.get("/")

    assert res.status_code == 200
    assert "message" in res.json()
