import json

import pytest
from fastapi.testclient import TestClient

from app.catalog_snapshot import SNAPSHOT_KEY, CatalogSnapshotStore
from app.main import app, get_catalog_client, get_settings, get_snapshot_store

from conftest import FakeCatalog, FakeRedis, make_item


client = TestClient(app)

AUTH = {"Authorization": "Bearer sync-secret"}


@pytest.fixture
def wired(settings):
    redis_client = FakeRedis()
    catalog = FakeCatalog(top_selling=[make_item(1, "ito"), make_item(2, "カタン", in_stock=False)])
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_catalog_client] = lambda: catalog
    app.dependency_overrides[get_snapshot_store] = lambda: CatalogSnapshotStore(redis_client)
    yield redis_client, catalog
    app.dependency_overrides.clear()


def test_requires_bearer_token(wired):
    assert client.post("/api/sync-products").status_code == 401
    resp = client.post("/api/sync-products", headers={"Authorization": "Bearer wrong"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "unauthorized"}


def test_sync_stores_snapshot_with_ttl(wired):
    redis_client, catalog = wired
    resp = client.post("/api/sync-products", headers=AUTH)
    assert resp.status_code == 200, resp.text
    assert resp.json() == {"ok": True, "count": 2}
    assert catalog.calls_of("fetch_all") == [("fetch_all", 5000)]
    assert redis_client.expiry[SNAPSHOT_KEY] == 3600
    stored = json.loads(redis_client.data[SNAPSHOT_KEY])
    assert [i["id"] for i in stored["items"]] == [1, 2]
    assert isinstance(stored["updatedAt"], int)


def test_snapshot_load_reads_back(wired):
    redis_client, _ = wired
    client.post("/api/sync-products", headers=AUTH)
    data = CatalogSnapshotStore(redis_client).load()
    assert len(data["items"]) == 2


def test_snapshot_load_missing_or_corrupt_is_none():
    redis_client = FakeRedis()
    store = CatalogSnapshotStore(redis_client)
    assert store.load() is None
    redis_client.data[SNAPSHOT_KEY] = "not json"
    assert store.load() is None


def test_catalog_failure_is_502(wired):
    _, catalog = wired
    catalog.ok = False
    resp = client.post("/api/sync-products", headers=AUTH)
    assert resp.status_code == 502


def test_missing_store_is_503(wired):
    app.dependency_overrides[get_snapshot_store] = lambda: None
    resp = client.post("/api/sync-products", headers=AUTH)
    assert resp.status_code == 503
