"""
Unit tests for checkpoint backends.
"""

import asyncio

import pytest

from distillery.persistence.base import (
    CheckpointStore,
    InMemoryCheckpointStore,
    decode_checkpoint,
    encode_checkpoint,
)


class TestEncoding:
    """Test checkpoint blob encoding."""

    def test_round_trip(self):
        data = {"version": 1, "items": [{"state": [0.1, 0.2]}], "learning_iterations": 3}

        assert decode_checkpoint(encode_checkpoint(data)) == data

    def test_blob_is_bytes(self):
        assert isinstance(encode_checkpoint({"a": 1}), bytes)

    def test_non_object_rejected(self):
        with pytest.raises(ValueError):
            decode_checkpoint(b"[1, 2, 3]")


class TestInMemoryCheckpointStore:
    """Test the process-local backend."""

    def test_save_and_load(self):
        store = InMemoryCheckpointStore()

        async def scenario():
            await store.save("agent-1", b"first")
            await store.save("agent-1", b"second")
            return await store.load("agent-1"), await store.load("agent-2")

        loaded, missing = asyncio.run(scenario())

        assert loaded == b"second"
        assert missing is None
        assert store.save_count == 2
        assert store.agent_ids() == ["agent-1"]

    def test_delete(self):
        store = InMemoryCheckpointStore()

        async def scenario():
            await store.save("agent-1", b"blob")
            return await store.delete("agent-1"), await store.delete("agent-1")

        assert asyncio.run(scenario()) == (True, False)


class TestCheckpointStoreBase:
    """Test the abstract interface."""

    def test_cannot_instantiate(self):
        with pytest.raises(TypeError):
            CheckpointStore()

    def test_delete_optional(self):
        class LoadOnly(CheckpointStore):
            async def save(self, agent_id, blob):
                pass

            async def load(self, agent_id):
                return None

        with pytest.raises(NotImplementedError):
            asyncio.run(LoadOnly().delete("agent-1"))
