"""
Checkpoint persistence.

The pipeline only needs two calls from a persistence backend:
``save(agent_id, blob)`` and ``load(agent_id) -> blob | None``. A missing
blob means cold start, not an error. Save and load are the only operations
in the pipeline that may suspend on I/O, so they are ``async``.

Real backends (database, object store) live outside this package;
``InMemoryCheckpointStore`` keeps blobs in a process-local dictionary.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


def encode_checkpoint(data: Dict[str, Any]) -> bytes:
    """Serialize checkpoint data to a UTF-8 JSON blob."""
    return json.dumps(data, default=str).encode("utf-8")


def decode_checkpoint(blob: bytes) -> Dict[str, Any]:
    """
    Deserialize a checkpoint blob.

    Raises:
        ValueError: If the blob is not a JSON object
    """
    data = json.loads(blob.decode("utf-8"))
    if not isinstance(data, dict):
        raise ValueError("checkpoint blob must encode a JSON object")
    return data


class CheckpointStore(ABC):
    """
    Abstract base class for checkpoint backends.

    Implementations may raise any exception on failure; callers treat every
    failure as the backend being unavailable.
    """

    @abstractmethod
    async def save(self, agent_id: str, blob: bytes) -> None:
        """
        Persist an agent's checkpoint, replacing any previous one.

        Args:
            agent_id: Agent identifier
            blob: Opaque checkpoint bytes
        """
        pass

    @abstractmethod
    async def load(self, agent_id: str) -> Optional[bytes]:
        """
        Fetch an agent's checkpoint.

        Args:
            agent_id: Agent identifier

        Returns:
            Checkpoint bytes, or None if nothing was saved
        """
        pass

    async def delete(self, agent_id: str) -> bool:
        """Remove an agent's checkpoint. Returns True if one existed."""
        raise NotImplementedError(f"{type(self).__name__} does not support delete")


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local checkpoint store."""

    def __init__(self):
        self._blobs: Dict[str, bytes] = {}
        self.save_count = 0

    async def save(self, agent_id: str, blob: bytes) -> None:
        self._blobs[agent_id] = bytes(blob)
        self.save_count += 1
        logger.debug(f"Saved checkpoint for {agent_id} ({len(blob)} bytes)")

    async def load(self, agent_id: str) -> Optional[bytes]:
        return self._blobs.get(agent_id)

    async def delete(self, agent_id: str) -> bool:
        return self._blobs.pop(agent_id, None) is not None

    def agent_ids(self) -> List[str]:
        return list(self._blobs)
