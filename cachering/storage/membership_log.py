"""
Membership log for rebuilding the ring after a restart.

Every membership change (ADD/REMOVE) is appended before it is applied
to the ring. On restart, replaying the log gives back the same members
with the same replica counts, so keys route exactly as before.

Format: JSON-lines (one event per line)
Example:
    {"op":"ADD","node":"cache-0","replicas":100,"ts":1705612800}
    {"op":"REMOVE","node":"cache-0","ts":1705612802}
"""
import json
import os
from typing import Optional
import aiofiles
import asyncio
import time
import logging

logger = logging.getLogger(__name__)

ADD = "ADD"
REMOVE = "REMOVE"


class MembershipLog:
    """
    Append-only log of ring membership changes.

    Safe for concurrent appends through an async lock.
    """

    def __init__(self, file_path: str):
        """
        Initialize the log at the specified path.

        Args:
            file_path: Path to the log file (e.g., "data/membership.log")
        """
        self.file_path = file_path
        self.lock = asyncio.Lock()

        directory = os.path.dirname(file_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        if not os.path.exists(file_path):
            with open(file_path, 'w'):
                pass
            logger.info(f"Created new membership log: {file_path}")
        else:
            logger.info(f"Using existing membership log: {file_path}")

    async def append(self, operation: str, node_id: str, replicas: Optional[int] = None) -> None:
        """
        Append a membership event to the log.

        Args:
            operation: "ADD" or "REMOVE"
            node_id: The node joining or leaving
            replicas: Replica count (required for ADD)
        """
        if operation not in (ADD, REMOVE):
            raise ValueError(f"Unknown membership operation '{operation}'")
        if operation == ADD and replicas is None:
            raise ValueError("ADD events need a replica count")

        async with self.lock:
            entry = {
                "op": operation,
                "node": node_id,
                "ts": int(time.time())
            }

            if replicas is not None:
                entry["replicas"] = replicas

            line = json.dumps(entry) + "\n"

            async with aiofiles.open(self.file_path, mode='a') as f:
                await f.write(line)

            logger.debug(f"Membership log: {operation} node={node_id}")

    async def replay(self) -> dict[str, int]:
        """
        Replay the log to reconstruct current membership.

        Returns:
            Dictionary mapping node ids to replica counts, in the order
            the nodes were (last) added

        Corrupted or invalid lines are logged and skipped.
        """
        members: dict[str, int] = {}
        line_number = 0

        async with aiofiles.open(self.file_path, mode='r') as f:
            async for line in f:
                line_number += 1
                line = line.strip()

                if not line:
                    continue

                try:
                    entry = json.loads(line)
                    op = entry["op"]
                    node_id = entry["node"]

                    if op == ADD:
                        replicas = entry["replicas"]
                        if not isinstance(replicas, int) or replicas <= 0:
                            logger.warning(
                                f"Invalid replica count {replicas!r} at line {line_number}"
                            )
                            continue
                        members.pop(node_id, None)
                        members[node_id] = replicas
                    elif op == REMOVE:
                        members.pop(node_id, None)
                    else:
                        logger.warning(f"Unknown operation '{op}' at line {line_number}")

                except json.JSONDecodeError as e:
                    logger.warning(f"Corrupted membership entry at line {line_number}: {e}")
                except (KeyError, TypeError) as e:
                    logger.warning(f"Invalid membership entry at line {line_number}: {e!r}")

        logger.info(f"Membership replay complete: {len(members)} nodes from {line_number} entries")
        return members

    async def close(self) -> None:
        """
        Close the log.

        No file handle is held open between appends; kept so callers can
        shut down every component the same way.
        """
        logger.debug("Membership log closed")
