"""
In-memory cache node.

Stands in for a physical cache server behind the ring. Values live only
in memory; when a node leaves the ring its entries are gone and the keys
become cache misses on their new owner.
"""
from typing import Callable, Optional
import asyncio
import logging

logger = logging.getLogger(__name__)


class CacheNode:
    """
    Async-safe in-memory key-value cache for one ring member.

    Usage:
        node = CacheNode("cache-0")
        await node.put("key", "value")
        value = await node.get("key")
        await node.delete("key")
        await node.close()
    """

    def __init__(self, node_id: str):
        self.node_id = node_id
        self.lock = asyncio.Lock()
        self.store: dict[str, str] = {}
        self._closed = False

        logger.debug(f"Created cache node {node_id}")

    async def get(self, key: str) -> Optional[str]:
        """Return the cached value, or None on a miss"""
        async with self.lock:
            return self.store.get(key)

    async def put(self, key: str, value: str) -> None:
        async with self.lock:
            self.store[key] = value

        logger.debug(f"{self.node_id}: PUT {key} (size: {len(value)} bytes)")

    async def delete(self, key: str) -> bool:
        """
        Delete a cached entry.

        Returns:
            True if key existed and was deleted, False otherwise
        """
        async with self.lock:
            if key not in self.store:
                return False
            del self.store[key]

        logger.debug(f"{self.node_id}: DELETE {key}")
        return True

    async def exists(self, key: str) -> bool:
        async with self.lock:
            return key in self.store

    async def size(self) -> int:
        async with self.lock:
            return len(self.store)

    async def evict(self, predicate: Callable[[str], bool]) -> int:
        """
        Drop every entry whose key matches the predicate.

        Returns:
            Number of entries dropped
        """
        async with self.lock:
            doomed = [key for key in self.store if predicate(key)]
            for key in doomed:
                del self.store[key]

        if doomed:
            logger.debug(f"{self.node_id}: evicted {len(doomed)} entries")
        return len(doomed)

    async def clear(self) -> int:
        """Drop every entry and return how many there were"""
        async with self.lock:
            dropped = len(self.store)
            self.store.clear()
        return dropped

    async def close(self) -> None:
        if self._closed:
            return

        dropped = await self.clear()
        self._closed = True

        logger.info(f"Cache node {self.node_id} closed ({dropped} entries dropped)")
