"""
Consistent hash ring with virtual nodes.

Nodes and keys are hashed into the same space. A key belongs to the
first virtual point at or after its hash, wrapping around past the end.
Because of this:
1. Same key always maps to same node for the same ring (deterministic)
2. Removing a node only moves the keys that node owned
3. Adding a node only takes keys away from the nodes it lands next to

Each physical node gets several virtual points (replicas) so that load
is spread evenly even with a handful of nodes.
"""
import bisect
import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Optional, Union

from cachering.cluster.errors import (
    EmptyRingError,
    InvalidArgumentError,
    NodeNotFoundError,
)
from cachering.cluster.hashing import (
    DEFAULT_HASH,
    HashFunction,
    get_hash_function,
    virtual_point_key,
)

logger = logging.getLogger(__name__)

DEFAULT_REPLICAS = 100


def _check_replicas(replicas: int) -> None:
    if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas <= 0:
        raise InvalidArgumentError(f"Replica count must be a positive integer, got {replicas!r}")


def validate_membership(node_id: str, replicas: int) -> None:
    """
    Check a node id and replica count before they touch the ring.

    Raises:
        InvalidArgumentError: If the id is empty or not a string, or
            replicas is not a positive integer
    """
    if not isinstance(node_id, str) or not node_id:
        raise InvalidArgumentError("Node id must be a non-empty string")
    _check_replicas(replicas)


@dataclass(frozen=True)
class _RingSnapshot:
    """Immutable view of the ring. Never modified after creation."""
    points: tuple[tuple[int, str], ...] = ()  # sorted (position, node_id)
    positions: tuple[int, ...] = ()
    replicas: dict[str, int] = field(default_factory=dict)  # node_id -> replica count

    @classmethod
    def build(cls, points: list[tuple[int, str]], replicas: dict[str, int]) -> "_RingSnapshot":
        points.sort()
        return cls(
            points=tuple(points),
            positions=tuple(pos for pos, _ in points),
            replicas=replicas,
        )


class HashRing:
    """
    Consistent hash ring mapping keys to node identifiers.

    The ring is a sorted sequence of (position, node_id) points. Points
    of different nodes that share a position are ordered by node id, so
    the lexically smallest id wins that position.

    Example with 2 nodes and 3 replicas each:
        Node A: positions [100, 500, 900]
        Node B: positions [200, 600, 800]
        Ring: [100→A, 200→B, 500→A, 600→B, 800→B, 900→A]

        Key "foo" hashes to 550 → first point >= 550 is 600 → Node B
        Key "bar" hashes to 950 → past the end, wraps to 100 → Node A

    Concurrency: copy-on-write. Lookups read the current snapshot without
    locking; add/remove build a new snapshot under a lock and swap it in
    with one assignment, so readers never see a half-added node.
    """

    def __init__(
        self,
        replicas: int = DEFAULT_REPLICAS,
        hash_function: Union[HashFunction, str] = DEFAULT_HASH,
        nodes: Optional[Iterable[str]] = None,
    ):
        """
        Initialize the hash ring.

        Args:
            replicas: Default number of virtual points per node.
                      More replicas = smoother load but more memory.
            hash_function: Hash strategy or its registry name. Fixed for
                           the lifetime of the ring, since changing it
                           would move every point.
            nodes: Optional node ids to add with the default replica count
        """
        if isinstance(hash_function, str):
            hash_function = get_hash_function(hash_function)
        _check_replicas(replicas)

        self._replicas = replicas
        self._hash = hash_function
        self._write_lock = threading.Lock()
        self._snapshot = _RingSnapshot()

        logger.info(
            f"Initialized hash ring with {replicas} replicas per node "
            f"({hash_function.name}, {hash_function.bits}-bit)"
        )

        for node_id in nodes or ():
            self.add_node(node_id)

    @property
    def replicas(self) -> int:
        """Default replica count used by add_node"""
        return self._replicas

    @property
    def hash_function(self) -> HashFunction:
        return self._hash

    def _node_points(self, node_id: str, replicas: int) -> list[tuple[int, str]]:
        return [
            (self._hash(virtual_point_key(node_id, i)), node_id)
            for i in range(replicas)
        ]

    def add_node(self, node_id: str, replicas: Optional[int] = None) -> bool:
        """
        Add a node to the hash ring.

        Creates one virtual point per replica. Re-adding a node with the
        same replica count does nothing; a different count replaces the
        node's points.

        Args:
            node_id: Unique identifier for the node (e.g., "10.0.0.5:11211")
            replicas: Virtual points for this node (ring default if None)

        Returns:
            True if the ring changed, False if the node was already present
            with the same replica count

        Raises:
            InvalidArgumentError: Empty node id or replicas <= 0
        """
        if replicas is None:
            replicas = self._replicas
        validate_membership(node_id, replicas)

        with self._write_lock:
            current = self._snapshot
            existing = current.replicas.get(node_id)

            if existing == replicas:
                logger.debug(f"Node {node_id} already on ring with {replicas} replicas")
                return False

            points = list(current.points)
            if existing is not None:
                points = [p for p in points if p[1] != node_id]
            points.extend(self._node_points(node_id, replicas))

            members = dict(current.replicas)
            members[node_id] = replicas
            self._snapshot = _RingSnapshot.build(points, members)

        if existing:
            logger.info(f"Re-added node {node_id}: {existing} -> {replicas} virtual nodes")
        else:
            logger.info(f"Added node {node_id} with {replicas} virtual nodes")
        return True

    def remove_node(self, node_id: str) -> None:
        """
        Remove a node from the hash ring.

        Keys owned by the node fall through to the next point clockwise.
        All other keys keep their owner.

        Args:
            node_id: Node to remove

        Raises:
            NodeNotFoundError: If the node is not on the ring (the ring
                is left unchanged)
        """
        with self._write_lock:
            current = self._snapshot
            if node_id not in current.replicas:
                raise NodeNotFoundError(node_id)

            points = [p for p in current.points if p[1] != node_id]
            members = {n: r for n, r in current.replicas.items() if n != node_id}
            self._snapshot = _RingSnapshot.build(points, members)

        logger.info(f"Removed node {node_id} ({current.replicas[node_id]} virtual nodes)")

    def lookup(self, key: Union[str, bytes]) -> str:
        """
        Find which node owns a given key.

        Hashes the key, then binary searches for the first virtual point
        whose position is >= the hash. Past the last point it wraps
        around to the first one.

        Args:
            key: The key to look up

        Returns:
            Node id owning this key

        Raises:
            EmptyRingError: If no nodes are registered
        """
        snapshot = self._snapshot
        if not snapshot.positions:
            raise EmptyRingError()

        position = self._hash(key)
        idx = bisect.bisect_left(snapshot.positions, position)

        # Wrap around if we're past the end
        if idx == len(snapshot.positions):
            idx = 0

        return snapshot.points[idx][1]

    def preference_list(self, key: Union[str, bytes], count: int) -> list[str]:
        """
        Get up to `count` distinct nodes for a key, walking clockwise.

        The first entry is always lookup(key); the rest are the order in
        which a caller should fall back if the owner is unreachable.

        Raises:
            InvalidArgumentError: If count <= 0
            EmptyRingError: If no nodes are registered
        """
        if count <= 0:
            raise InvalidArgumentError(f"count must be positive, got {count}")

        snapshot = self._snapshot
        if not snapshot.positions:
            raise EmptyRingError()

        wanted = min(count, len(snapshot.replicas))
        start = bisect.bisect_left(snapshot.positions, self._hash(key))
        total = len(snapshot.points)

        result: list[str] = []
        for offset in range(total):
            node_id = snapshot.points[(start + offset) % total][1]
            if node_id not in result:
                result.append(node_id)
                if len(result) == wanted:
                    break
        return result

    def members(self) -> frozenset[str]:
        """Distinct node ids currently on the ring"""
        return frozenset(self._snapshot.replicas)

    def points(self) -> tuple[tuple[int, str], ...]:
        """Sorted (position, node_id) pairs of the current ring"""
        return self._snapshot.points

    def replica_count(self, node_id: str) -> int:
        """
        Number of virtual points registered for a node.

        Raises:
            NodeNotFoundError: If the node is not on the ring
        """
        try:
            return self._snapshot.replicas[node_id]
        except KeyError:
            raise NodeNotFoundError(node_id) from None

    def get_distribution(self) -> dict[str, int]:
        """
        Get statistics on how virtual nodes are distributed.

        Returns:
            Dictionary mapping node_id → count of virtual nodes
        """
        snapshot = self._snapshot
        distribution: dict[str, int] = {node: 0 for node in snapshot.replicas}

        for _, node_id in snapshot.points:
            distribution[node_id] += 1

        return distribution

    def get_node_count(self) -> int:
        """Get number of physical nodes in the ring"""
        return len(self._snapshot.replicas)

    def get_vnode_count(self) -> int:
        """Get total number of virtual nodes in the ring"""
        return len(self._snapshot.points)

    def __len__(self) -> int:
        return self.get_node_count()

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._snapshot.replicas

    def __repr__(self) -> str:
        return (
            f"HashRing(nodes={self.get_node_count()}, vnodes={self.get_vnode_count()}, "
            f"hash={self._hash.name})"
        )
