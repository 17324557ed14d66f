"""
Checkpoint persistence backends.
"""

from .base import (
    CheckpointStore,
    InMemoryCheckpointStore,
    decode_checkpoint,
    encode_checkpoint,
)

__all__ = [
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "decode_checkpoint",
    "encode_checkpoint",
]
