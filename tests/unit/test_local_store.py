"""Unit tests for the local JSON metadata store."""

import json
from datetime import timedelta

import pytest

from memweave.models.schemas import (
    AgentProfile,
    ContentType,
    Memory,
    MemoryType,
    utcnow,
)
from memweave.storage.local_store import LocalMetadataStore


def make_memory(**overrides) -> Memory:
    fields = {
        "type": MemoryType.SEMANTIC,
        "content_type": ContentType.TEXT,
        "content": "The staging database lives in eu-west-1",
        "agent_id": "agent-1",
        "project": "infra",
    }
    fields.update(overrides)
    return Memory(**fields)


class TestMemoryRecords:
    """Test memory persistence."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, local_store):
        memory = make_memory(tags=["db"])
        await local_store.put_memory(memory)

        loaded = await local_store.get_memory(memory.memory_id, track_access=False)

        assert loaded is not None
        assert loaded.content == memory.content
        assert loaded.tags == ["db"]
        assert loaded.access_count == 0

    @pytest.mark.asyncio
    async def test_records_use_composite_keys(self, local_store):
        memory = make_memory()
        await local_store.put_memory(memory)

        data = json.loads((local_store.storage_dir / "memory-metadata.json").read_text())
        record = data[f"MEMORY#{memory.memory_id}|METADATA"]

        assert record["PK"] == f"MEMORY#{memory.memory_id}"
        assert record["SK"] == "METADATA"

    @pytest.mark.asyncio
    async def test_get_tracks_access(self, local_store):
        memory = make_memory()
        await local_store.put_memory(memory)

        await local_store.get_memory(memory.memory_id)
        loaded = await local_store.get_memory(memory.memory_id)

        assert loaded.access_count == 2
        assert loaded.last_accessed >= memory.last_accessed

    @pytest.mark.asyncio
    async def test_missing_memory(self, local_store):
        assert await local_store.get_memory("mem_0_missing") is None

    @pytest.mark.asyncio
    async def test_expired_memory_is_invisible(self, local_store):
        memory = make_memory(
            type=MemoryType.WORKING,
            expires_at=utcnow() - timedelta(seconds=1),
        )
        await local_store.put_memory(memory)

        assert await local_store.get_memory(memory.memory_id) is None
        assert await local_store.list_memories() == []

    @pytest.mark.asyncio
    async def test_update_memory(self, local_store):
        memory = make_memory()
        await local_store.put_memory(memory)

        updated = await local_store.update_memory(
            memory.memory_id, {"tags": ["a", "b"], "confidence": 0.5}
        )

        assert updated.tags == ["a", "b"]
        assert updated.confidence == 0.5
        assert updated.updated_at >= memory.updated_at
        reloaded = await local_store.get_memory(memory.memory_id, track_access=False)
        assert reloaded.tags == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_missing_returns_none(self, local_store):
        assert await local_store.update_memory("mem_0_missing", {"tags": []}) is None

    @pytest.mark.asyncio
    async def test_delete_memory(self, local_store):
        memory = make_memory()
        await local_store.put_memory(memory)

        assert await local_store.delete_memory(memory.memory_id) is True
        assert await local_store.delete_memory(memory.memory_id) is False
        assert await local_store.get_memory(memory.memory_id) is None

    @pytest.mark.asyncio
    async def test_embedding_is_not_persisted(self, local_store):
        memory = make_memory(embedding=[0.1, 0.2])
        await local_store.put_memory(memory)

        loaded = await local_store.get_memory(memory.memory_id, track_access=False)

        assert loaded.embedding is None

    @pytest.mark.asyncio
    async def test_data_survives_new_instance(self, local_store):
        memory = make_memory()
        await local_store.put_memory(memory)

        reopened = LocalMetadataStore(local_store.storage_dir)

        assert [m.memory_id for m in await reopened.list_memories()] == [memory.memory_id]


class TestSessionsAndAgents:
    """Test session rings and agent profiles."""

    @pytest.mark.asyncio
    async def test_session_ring_keeps_last_window(self, local_store):
        for i in range(12):
            session = await local_store.record_session_memory(
                "sess-1", f"mem_{i}", agent_id="agent-1", window=10
            )

        assert session.recent_memory_ids == [f"mem_{i}" for i in range(2, 12)]
        assert session.memory_count == 12

        stored = await local_store.get_session("sess-1")
        assert stored.recent_memory_ids == session.recent_memory_ids
        assert stored.agent_id == "agent-1"

    @pytest.mark.asyncio
    async def test_missing_session(self, local_store):
        assert await local_store.get_session("nope") is None

    @pytest.mark.asyncio
    async def test_agent_profile_round_trip(self, local_store):
        profile = AgentProfile(agent_id="agent-1")
        profile.record_memory("infra")
        profile.record_memory("infra")
        await local_store.put_agent_profile(profile)

        loaded = await local_store.get_agent_profile("agent-1")

        assert loaded.projects == ["infra"]
        assert loaded.memory_count == 2


@pytest.mark.asyncio
async def test_health_check_creates_directory(tmp_path):
    store = LocalMetadataStore(tmp_path / "nested" / "db")

    assert await store.health_check() is True
    assert (tmp_path / "nested" / "db").is_dir()
