"""
Errors raised by the hash ring.

All errors are raised synchronously to the caller and never retried
internally. A failed operation leaves the ring in its previous state.
"""


class RingError(Exception):
    """Base class for hash ring errors"""


class InvalidArgumentError(RingError, ValueError):
    """Bad node identifier, replica count or hash function name"""


class NodeNotFoundError(RingError, LookupError):
    """Raised when removing or inspecting a node that is not on the ring"""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Node '{node_id}' is not on the ring")


class EmptyRingError(RingError, LookupError):
    """Raised when looking up a key on a ring with no nodes"""

    def __init__(self):
        super().__init__("Hash ring is empty - no nodes registered")
