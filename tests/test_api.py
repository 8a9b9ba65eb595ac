"""
Integration tests for the Cache Ring API.

These tests verify membership, lookup and routed cache operations.
"""
import pytest
from fastapi.testclient import TestClient
from cachering.main import app
import cachering.main as main_module


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Start the app with three nodes and a fresh data directory"""
    monkeypatch.setenv("CACHE_NODES", "test-node-0,test-node-1,test-node-2")
    monkeypatch.setenv("RING_REPLICAS", "20")
    monkeypatch.setenv("DATA_DIR", str(tmp_path))

    with TestClient(app) as test_client:
        yield test_client


def test_health_check(client):
    """Test that health check endpoint returns expected data"""
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["nodes"] == 3
    assert "keys_cached" in data


def test_list_nodes(client):
    response = client.get("/nodes")

    assert response.status_code == 200
    assert response.json()["nodes"] == ["test-node-0", "test-node-1", "test-node-2"]


def test_lookup(client):
    first = client.get("/lookup/user:123")
    second = client.get("/lookup/user:123")

    assert first.status_code == 200
    assert first.json()["node_id"] in ["test-node-0", "test-node-1", "test-node-2"]
    assert first.json() == second.json()


def test_put_and_get(client):
    """Test caching and retrieving a value"""
    put_response = client.put("/cache/test-key", json={"value": "test-value"})
    assert put_response.status_code == 200
    assert put_response.json()["key"] == "test-key"

    owner = client.get("/lookup/test-key").json()["node_id"]
    assert put_response.json()["node_id"] == owner

    get_response = client.get("/cache/test-key")
    assert get_response.status_code == 200
    assert get_response.json() == {"value": "test-value", "node_id": owner}


def test_get_missing_key(client):
    """Test that getting an uncached key returns 404"""
    response = client.get("/cache/does-not-exist")

    assert response.status_code == 404
    assert "not found" in response.json()["detail"].lower()


def test_delete(client):
    """Test deleting a cached value"""
    client.put("/cache/delete-me", json={"value": "temporary"})

    delete_response = client.delete("/cache/delete-me")
    assert delete_response.status_code == 200
    assert delete_response.json()["key"] == "delete-me"

    assert client.get("/cache/delete-me").status_code == 404
    assert client.delete("/cache/delete-me").status_code == 404


def test_add_node(client):
    response = client.put("/nodes/test-node-3", json={"replicas": 40})

    assert response.status_code == 200
    assert response.json() == {"message": "added", "node_id": "test-node-3", "replicas": 40}
    assert "test-node-3" in client.get("/nodes").json()["nodes"]
    assert client.get("/stats").json()["vnodes_per_node"]["test-node-3"] == 40


def test_add_node_default_replicas(client):
    response = client.put("/nodes/test-node-3")

    assert response.status_code == 200
    assert response.json()["replicas"] == 20

    again = client.put("/nodes/test-node-3")
    assert again.json()["message"] == "unchanged"


def test_add_node_invalid_replicas(client):
    response = client.put("/nodes/test-node-3", json={"replicas": 0})

    assert response.status_code == 400
    assert "test-node-3" not in client.get("/nodes").json()["nodes"]


def test_remove_node(client):
    response = client.delete("/nodes/test-node-1")

    assert response.status_code == 200
    assert client.get("/nodes").json()["nodes"] == ["test-node-0", "test-node-2"]


def test_remove_unknown_node(client):
    response = client.delete("/nodes/ghost")

    assert response.status_code == 404


def test_empty_ring_returns_503(client):
    for node_id in ["test-node-0", "test-node-1", "test-node-2"]:
        client.delete(f"/nodes/{node_id}")

    assert client.get("/lookup/any").status_code == 503
    assert client.get("/cache/any").status_code == 503
    assert client.put("/cache/any", json={"value": "v"}).status_code == 503


def test_stats(client):
    for i in range(10):
        client.put(f"/cache/key:{i}", json={"value": f"value:{i}"})

    stats = client.get("/stats").json()

    assert stats["total_keys"] == 10
    assert stats["num_nodes"] == 3
    assert stats["hash_function"] == "sha256"


def test_add_node_reports_replicas_when_removed_concurrently(client, monkeypatch):
    """Test that a removal racing the add does not break the response"""
    router = main_module.cache_router
    original_add = router.add_node

    async def add_then_remove(node_id, replicas=None):
        changed = await original_add(node_id, replicas)
        await router.remove_node(node_id)
        return changed

    monkeypatch.setattr(router, "add_node", add_then_remove)

    response = client.put("/nodes/test-node-3", json={"replicas": 30})

    assert response.status_code == 200
    assert response.json()["replicas"] == 30


def test_cache_responses_name_serving_node(client):
    put_response = client.put("/cache/user:7", json={"value": "bob"})
    node_id = put_response.json()["node_id"]

    assert node_id in main_module.cache_router.nodes
    assert client.get("/cache/user:7").json()["node_id"] == node_id
    assert client.delete("/cache/user:7").status_code == 200
