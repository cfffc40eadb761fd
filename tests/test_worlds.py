"""
Tests for the world list.
"""
from datetime import timedelta

from app.cache.core import SENTINEL_NAME, WORLDS_SENTINEL_KEY

from conftest import NOW


def _seed_worlds(store, names, sentinel_age):
    for wid, name in names.items():
        store.upsert("Worlds", wid, {"wid": wid, "name": name}, NOW - sentinel_age)
    store.upsert("Worlds", WORLDS_SENTINEL_KEY, {"wid": WORLDS_SENTINEL_KEY, "name": SENTINEL_NAME},
                 NOW - sentinel_age)


def test_fresh_list_served_without_refresh(client, store, source):
    _seed_worlds(store, {1: "world", 5: "creative_flat"}, timedelta(minutes=30))

    response = client.get("/worlds")

    assert response.status_code == 200
    assert response.json() == {
        "worlds": [{"wid": 1, "name": "world"}, {"wid": 5, "name": "creative_flat"}],
        "cache": {"last_update": (NOW - timedelta(minutes=30)).isoformat() + "Z", "refreshed": False},
    }
    assert source.calls == []


def test_sentinel_never_listed(client, store):
    _seed_worlds(store, {1: "world"}, timedelta(minutes=1))

    wids = [w["wid"] for w in client.get("/worlds").json()["worlds"]]

    assert WORLDS_SENTINEL_KEY not in wids


def test_stale_list_served_then_overwritten(client, store, source):
    _seed_worlds(store, {1: "old_world", 5: "old_flat"}, timedelta(hours=2))

    body = client.get("/worlds").json()

    # Old names go out with this response
    assert [w["name"] for w in body["worlds"]] == ["old_world", "old_flat"]
    assert body["cache"]["refreshed"] is True

    # Refresh replaced every world and wrote a new sentinel
    assert len(source.calls) == 1
    records, _ = store.scan("Worlds")
    assert [(r.payload["wid"], r.payload["name"]) for r in records] == [
        (1, "world"),
        (5, "creative_flat"),
        (7, "world_nether"),
        (WORLDS_SENTINEL_KEY, SENTINEL_NAME),
    ]
    assert all(r.timestamp == NOW for r in records)


def test_hour_old_sentinel_is_stale(client, store, source):
    _seed_worlds(store, {1: "world"}, timedelta(hours=1))

    assert client.get("/worlds").json()["cache"]["refreshed"] is True
    assert len(source.calls) == 1


def test_empty_cache_bootstraps(client, store):
    body = client.get("/worlds").json()

    assert body == {"worlds": [], "cache": {"last_update": None, "refreshed": True}}

    followup = client.get("/worlds").json()
    assert [w["name"] for w in followup["worlds"]] == ["world", "creative_flat", "world_nether"]
    assert followup["cache"] == {"last_update": NOW.isoformat() + "Z", "refreshed": False}
