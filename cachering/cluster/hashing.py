"""
Hash strategies for placing nodes and keys on the ring.

A strategy turns a byte sequence into a fixed-width unsigned integer.
It only needs a roughly uniform output and few collisions; it does not
need to be cryptographically secure.

Available strategies:
    crc32   - 32-bit zlib checksum
    md5     - first 32 bits of MD5
    sha256  - first 64 bits of SHA-256 (default)
"""
import hashlib
import zlib
from dataclasses import dataclass
from typing import Callable, Union

from cachering.cluster.errors import InvalidArgumentError


@dataclass(frozen=True)
class HashFunction:
    """
    A named hash strategy producing values in [0, 2^bits).

    Args:
        name: Registry name (e.g. "sha256")
        bits: Width of the output space
        digest: Function mapping bytes to a non-negative integer
    """
    name: str
    bits: int
    digest: Callable[[bytes], int]

    @property
    def space(self) -> int:
        """Number of positions on the ring (2^bits)"""
        return 1 << self.bits

    def __call__(self, data: Union[str, bytes]) -> int:
        if isinstance(data, str):
            data = data.encode('utf-8')
        return self.digest(data) & (self.space - 1)


def _crc32(data: bytes) -> int:
    return zlib.crc32(data) & 0xFFFFFFFF


def _md5_32(data: bytes) -> int:
    digest = hashlib.md5(data, usedforsecurity=False).digest()
    return int.from_bytes(digest[:4], byteorder="big")


def _sha256_64(data: bytes) -> int:
    # First 16 hex characters = 64 bits
    return int(hashlib.sha256(data).hexdigest()[:16], 16)


CRC32 = HashFunction("crc32", 32, _crc32)
MD5 = HashFunction("md5", 32, _md5_32)
SHA256 = HashFunction("sha256", 64, _sha256_64)

DEFAULT_HASH = SHA256

HASH_FUNCTIONS: dict[str, HashFunction] = {
    fn.name: fn for fn in (CRC32, MD5, SHA256)
}


def get_hash_function(name: str) -> HashFunction:
    """
    Look up a hash strategy by name.

    Raises:
        InvalidArgumentError: If no strategy is registered under that name
    """
    try:
        return HASH_FUNCTIONS[name]
    except KeyError:
        raise InvalidArgumentError(
            f"Unknown hash function '{name}' (available: {', '.join(sorted(HASH_FUNCTIONS))})"
        ) from None


def virtual_point_key(node_id: str, replica_index: int) -> bytes:
    """
    Build the hash input for one virtual point of a node.

    The replica index comes first and ends at the first ':', so two
    different (index, node) pairs can never produce the same bytes,
    even when node ids contain digits or colons.
    """
    return f"{replica_index}:{node_id}".encode('utf-8')
