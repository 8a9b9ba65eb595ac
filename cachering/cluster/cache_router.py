"""
Cache router that sends each key to the cache node owning it on the ring.

The CacheRouter keeps one CacheNode per ring member and resolves every
key through HashRing.lookup. Nodes can join and leave at runtime; only
the keys owned by the changed node move. Entries left on a node that
no longer owns their key are evicted, so moved keys start as misses.

Membership changes are written to a MembershipLog before being applied,
so a restarted router rebuilds the same ring.
"""
import os
from typing import Optional, Union
import logging
from cachering.cluster.consistent_hash import DEFAULT_REPLICAS, HashRing, validate_membership
from cachering.cluster.errors import NodeNotFoundError
from cachering.cluster.hashing import DEFAULT_HASH, HashFunction
from cachering.storage.cache_node import CacheNode
from cachering.storage.membership_log import ADD, REMOVE, MembershipLog

logger = logging.getLogger(__name__)

MEMBERSHIP_LOG_NAME = "membership.log"


class CacheRouter:
    """
    Routes cache operations to nodes with a consistent hash ring.

    Usage:
        router = CacheRouter(["cache-0", "cache-1", "cache-2"], "data")
        await router.initialize()

        await router.put("user:123", "alice")   # Routed to owning node
        value = await router.get("user:123")    # Same node

        await router.remove_node("cache-1")      # Only cache-1's keys move
        await router.close()
    """

    def __init__(
        self,
        seed_node_ids: list[str],
        data_dir: str = "data",
        replicas: int = DEFAULT_REPLICAS,
        hash_function: Union[HashFunction, str] = DEFAULT_HASH,
    ):
        """
        Initialize cache router.

        Args:
            seed_node_ids: Nodes to start with when the membership log is empty
            data_dir: Directory for the membership log
            replicas: Default virtual nodes per cache node
            hash_function: Hash strategy (or its name) for the ring
        """
        self.seed_node_ids = list(seed_node_ids)
        self.data_dir = data_dir
        self.nodes: dict[str, CacheNode] = {}
        self.hash_ring = HashRing(replicas=replicas, hash_function=hash_function)
        self.membership_log = MembershipLog(os.path.join(data_dir, MEMBERSHIP_LOG_NAME))

        logger.info(f"Initializing CacheRouter with {len(self.seed_node_ids)} seed nodes")

    async def initialize(self) -> None:
        """
        Rebuild membership from the log, or seed it on first start.
        """
        members = await self.membership_log.replay()

        if members:
            for node_id, replicas in members.items():
                self.hash_ring.add_node(node_id, replicas)
                self.nodes[node_id] = CacheNode(node_id)
            logger.info(f"Restored {len(members)} nodes from membership log")
        else:
            for node_id in self.seed_node_ids:
                await self.add_node(node_id)

        logger.info(f"CacheRouter initialized: {len(self.nodes)} nodes")
        logger.info(f"Virtual node distribution: {self.hash_ring.get_distribution()}")

    async def add_node(self, node_id: str, replicas: Optional[int] = None) -> bool:
        """
        Add a cache node (or change its replica count).

        Returns:
            True if the ring changed, False if the node was already there
            with the same replica count

        Raises:
            InvalidArgumentError: Empty node id or replicas <= 0
        """
        if replicas is None:
            replicas = self.hash_ring.replicas
        validate_membership(node_id, replicas)

        if node_id in self.hash_ring and self.hash_ring.replica_count(node_id) == replicas:
            logger.warning(f"Node {node_id} already routed with {replicas} replicas")
            return False

        await self.membership_log.append(ADD, node_id, replicas)
        changed = self.hash_ring.add_node(node_id, replicas)
        if node_id not in self.nodes:
            self.nodes[node_id] = CacheNode(node_id)
        if changed:
            await self._evict_moved_keys()
        return changed

    async def _evict_moved_keys(self) -> None:
        """
        Drop entries cached on a node that no longer owns their key.

        Afterwards a moved key misses on its new owner and no old copy
        is left on its previous owner.
        """
        evicted = 0
        for node_id, node in list(self.nodes.items()):
            evicted += await node.evict(
                lambda key, owner=node_id: self.hash_ring.lookup(key) != owner
            )
        if evicted:
            logger.info(f"Evicted {evicted} entries after membership change")

    async def remove_node(self, node_id: str) -> None:
        """
        Remove a cache node. Its cached entries are dropped.

        Raises:
            NodeNotFoundError: If the node is not a member
        """
        if node_id not in self.hash_ring:
            raise NodeNotFoundError(node_id)

        await self.membership_log.append(REMOVE, node_id)
        self.hash_ring.remove_node(node_id)

        node = self.nodes.pop(node_id, None)
        if node is not None:
            await node.close()

    def owner(self, key: str) -> str:
        """
        Node id owning a key.

        Raises:
            EmptyRingError: If every node has been removed
        """
        return self.hash_ring.lookup(key)

    def _get_node(self, key: str) -> CacheNode:
        node_id = self.owner(key)
        logger.debug(f"Routing key '{key}' to {node_id}")
        return self.nodes[node_id]

    def members(self) -> list[str]:
        return sorted(self.hash_ring.members())

    async def get(self, key: str) -> Optional[str]:
        """
        Get cached value for a key.

        Returns:
            Value if cached, None on a miss
        """
        node = self._get_node(key)
        return await node.get(key)

    async def get_with_owner(self, key: str) -> tuple[str, Optional[str]]:
        """
        Get cached value together with the node that served it.

        Returns:
            (node_id, value) with value None on a miss
        """
        node = self._get_node(key)
        return node.node_id, await node.get(key)

    async def put(self, key: str, value: str) -> str:
        """
        Cache a value on the node owning the key.

        Returns:
            Node id the value was stored on
        """
        node = self._get_node(key)
        await node.put(key, value)
        return node.node_id

    async def delete(self, key: str) -> bool:
        """
        Delete a cached entry.

        Returns:
            True if key was cached and deleted, False otherwise
        """
        node = self._get_node(key)
        return await node.delete(key)

    async def exists(self, key: str) -> bool:
        node = self._get_node(key)
        return await node.exists(key)

    async def size(self) -> int:
        """
        Get total number of cached keys across all nodes.
        """
        total = 0
        for node in self.nodes.values():
            total += await node.size()
        return total

    async def get_stats(self) -> dict:
        """
        Get statistics about key distribution.

        Returns:
            Dictionary with:
            - total_keys: Total cached keys across all nodes
            - num_nodes: Number of nodes
            - nodes: Dict mapping node_id → cached key count
            - vnodes_per_node: Virtual node distribution
            - hash_function: Name of the ring's hash strategy
        """
        node_stats = {}
        total_keys = 0

        for node_id, node in self.nodes.items():
            count = await node.size()
            node_stats[node_id] = count
            total_keys += count

        return {
            "total_keys": total_keys,
            "num_nodes": len(self.nodes),
            "nodes": node_stats,
            "vnodes_per_node": self.hash_ring.get_distribution(),
            "hash_function": self.hash_ring.hash_function.name,
        }

    async def close(self) -> None:
        """
        Close all cache nodes and the membership log.
        """
        for node_id, node in self.nodes.items():
            await node.close()
            logger.debug(f"Closed node {node_id}")

        await self.membership_log.close()
        logger.info("All cache nodes closed")
