"""
Service settings read from environment variables.

    CACHE_NODES    comma separated seed node ids (default "cache-0,cache-1,cache-2")
    RING_REPLICAS  virtual nodes per cache node (default 100)
    RING_HASH      hash strategy name: crc32, md5 or sha256 (default sha256)
    DATA_DIR       directory for the membership log (default "data")
    LOG_LEVEL      logging level (default INFO)
"""
import os
from pydantic import BaseModel, Field, field_validator

from cachering.cluster.consistent_hash import DEFAULT_REPLICAS
from cachering.cluster.hashing import DEFAULT_HASH, HASH_FUNCTIONS


class RingSettings(BaseModel):
    """Settings for the cache router service"""
    node_ids: list[str] = Field(default_factory=lambda: ["cache-0", "cache-1", "cache-2"])
    replicas: int = Field(default=DEFAULT_REPLICAS, gt=0)
    hash_name: str = DEFAULT_HASH.name
    data_dir: str = "data"
    log_level: str = "INFO"

    @field_validator("node_ids")
    @classmethod
    def _check_node_ids(cls, value: list[str]) -> list[str]:
        if any(not node_id for node_id in value):
            raise ValueError("node ids must be non-empty")
        return value

    @field_validator("hash_name")
    @classmethod
    def _check_hash_name(cls, value: str) -> str:
        if value not in HASH_FUNCTIONS:
            raise ValueError(
                f"unknown hash function '{value}' (available: {', '.join(sorted(HASH_FUNCTIONS))})"
            )
        return value

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        value = value.upper()
        if value not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level '{value}'")
        return value

    @classmethod
    def from_env(cls) -> "RingSettings":
        """Load settings from environment variables"""
        nodes_str = os.getenv("CACHE_NODES", "cache-0,cache-1,cache-2")
        node_ids = [n.strip() for n in nodes_str.split(",") if n.strip()]

        return cls(
            node_ids=node_ids,
            replicas=os.getenv("RING_REPLICAS", str(DEFAULT_REPLICAS)),
            hash_name=os.getenv("RING_HASH", DEFAULT_HASH.name),
            data_dir=os.getenv("DATA_DIR", "data"),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
