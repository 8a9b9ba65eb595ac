"""
Unit tests for CacheNode.
"""
import pytest
from cachering.storage.cache_node import CacheNode


@pytest.mark.asyncio
async def test_put_get():
    """Test basic put and get operations"""
    node = CacheNode("cache-0")

    await node.put("key1", "value1")

    assert await node.get("key1") == "value1"
    assert await node.exists("key1") is True

    await node.close()


@pytest.mark.asyncio
async def test_get_miss():
    """Test that a missing key returns None"""
    node = CacheNode("cache-0")

    assert await node.get("does-not-exist") is None
    assert await node.exists("does-not-exist") is False


@pytest.mark.asyncio
async def test_delete():
    """Test delete operation"""
    node = CacheNode("cache-0")

    await node.put("key1", "value1")
    assert await node.delete("key1") is True
    assert await node.get("key1") is None

    # Delete again
    assert await node.delete("key1") is False


@pytest.mark.asyncio
async def test_overwrite_and_size():
    node = CacheNode("cache-0")

    await node.put("key1", "value1")
    await node.put("key1", "value2")
    await node.put("key2", "value3")

    assert await node.get("key1") == "value2"
    assert await node.size() == 2


@pytest.mark.asyncio
async def test_close_drops_entries():
    node = CacheNode("cache-0")
    await node.put("key1", "value1")

    await node.close()
    await node.close()  # Closing twice is harmless

    assert await node.size() == 0


@pytest.mark.asyncio
async def test_evict_matching_keys():
    node = CacheNode("cache-0")
    await node.put("user:1", "a")
    await node.put("user:2", "b")
    await node.put("order:1", "c")

    dropped = await node.evict(lambda key: key.startswith("user:"))

    assert dropped == 2
    assert await node.get("user:1") is None
    assert await node.get("order:1") == "c"
    assert await node.evict(lambda key: False) == 0
