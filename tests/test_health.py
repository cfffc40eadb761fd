"""
Tests for the health, version and cache stats endpoints
"""


def test_health_endpoint_returns_200(client):
    """Test that /health returns HTTP 200"""
    response = client.get("/health")
    assert response.status_code == 200


def test_health_endpoint_returns_ok_status(client):
    """Test that /health returns status: ok"""
    data = client.get("/health").json()
    assert data["status"] == "ok"


def test_version_endpoint(client):
    data = client.get("/version").json()
    assert data["name"] == "Game Info"
    assert data["full"] == f"Game Info {data['version']}"


def test_cache_stats_count_hits_and_misses(client, store):
    client.get("/blockcounts", params={"wid": 5})  # miss, then refreshed
    client.get("/blockcounts", params={"wid": 5})  # fresh hit

    stats = client.get("/cache/stats").json()

    assert stats["misses"] == 1
    assert stats["hits_fresh"] == 1
    assert stats["hits_stale"] == 0
    assert stats["hit_rate_percent"] == 50.0
    assert stats["refreshes"]["dispatched"] == 1
    assert stats["refreshes"]["completed"] == 1
