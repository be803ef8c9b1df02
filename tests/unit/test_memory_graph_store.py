"""Unit tests for the in-process graph store."""

import pytest

from memweave.knowledge.graph_store import cluster_confidence, distance_confidence
from memweave.models.schemas import ContentType, EntityType, Memory, MemoryType


def make_memory(content: str = "note", agent_id: str = "agent-1") -> Memory:
    return Memory(
        type=MemoryType.SEMANTIC,
        content_type=ContentType.TEXT,
        content=content,
        agent_id=agent_id,
    )


async def add_nodes(graph_store, count: int, **kwargs) -> list[Memory]:
    memories = [make_memory(f"memory {i}", **kwargs) for i in range(count)]
    for memory in memories:
        await graph_store.create_memory_node(memory)
    return memories


class TestEdges:
    """Test node and edge creation."""

    @pytest.mark.asyncio
    async def test_edge_requires_both_endpoints(self, graph_store):
        [a] = await add_nodes(graph_store, 1)

        assert await graph_store.add_edge(a.memory_id, "mem_0_missing", "REFERENCES") is None

    @pytest.mark.asyncio
    async def test_edge_between_entity_kinds(self, graph_store):
        [a] = await add_nodes(graph_store, 1)
        await graph_store.ensure_entity_node("agent-1", EntityType.AGENT)

        connection_id = await graph_store.add_edge(
            "agent-1", a.memory_id, "CREATED", from_type=EntityType.AGENT, confidence=1.0
        )

        assert connection_id is not None
        [edge] = await graph_store.entity_connections("agent-1", EntityType.AGENT)
        assert edge.to_id == a.memory_id
        assert edge.confidence == 1.0

    @pytest.mark.asyncio
    async def test_connections_filter_by_type(self, graph_store):
        a, b, c = await add_nodes(graph_store, 3)
        await graph_store.add_edge(a.memory_id, b.memory_id, "REFERENCES")
        await graph_store.add_edge(a.memory_id, c.memory_id, "DEPENDS_ON")

        assert len(await graph_store.connections(a.memory_id)) == 2
        [edge] = await graph_store.connections(a.memory_id, relationship_type="DEPENDS_ON")
        assert edge.to_id == c.memory_id
        assert len(await graph_store.connections(limit=1)) == 1


class TestRelatedMemories:
    """Test bounded traversal."""

    @pytest.mark.asyncio
    async def test_depth_bound_and_confidence(self, graph_store):
        """a - b - c - d: depth 2 from a reaches b and c only."""
        a, b, c, d = await add_nodes(graph_store, 4)
        await graph_store.add_edge(a.memory_id, b.memory_id, "REFERENCES")
        await graph_store.add_edge(b.memory_id, c.memory_id, "REFERENCES")
        await graph_store.add_edge(c.memory_id, d.memory_id, "REFERENCES")

        related = await graph_store.related_memories(a.memory_id, max_depth=2)

        assert [(r.memory_id, r.distance) for r in related] == [
            (b.memory_id, 1),
            (c.memory_id, 2),
        ]
        assert related[0].confidence == pytest.approx(0.8)
        assert related[1].confidence == pytest.approx(0.6)

    @pytest.mark.asyncio
    async def test_edges_walked_both_directions(self, graph_store):
        a, b = await add_nodes(graph_store, 2)
        await graph_store.add_edge(b.memory_id, a.memory_id, "REFERENCES")

        related = await graph_store.related_memories(a.memory_id, max_depth=1)

        assert [r.memory_id for r in related] == [b.memory_id]

    @pytest.mark.asyncio
    async def test_cycles_terminate(self, graph_store):
        a, b, c = await add_nodes(graph_store, 3)
        await graph_store.add_edge(a.memory_id, b.memory_id, "REFERENCES")
        await graph_store.add_edge(b.memory_id, c.memory_id, "REFERENCES")
        await graph_store.add_edge(c.memory_id, a.memory_id, "REFERENCES")

        related = await graph_store.related_memories(a.memory_id, max_depth=5)

        assert {r.memory_id for r in related} == {b.memory_id, c.memory_id}

    @pytest.mark.asyncio
    async def test_non_memory_nodes_not_traversed(self, graph_store):
        """Two memories sharing a session are not related through it."""
        a, b = await add_nodes(graph_store, 2)
        await graph_store.ensure_entity_node("sess-1", EntityType.SESSION)
        for memory in (a, b):
            await graph_store.add_edge(
                memory.memory_id, "sess-1", "IN_SESSION", to_type=EntityType.SESSION
            )

        assert await graph_store.related_memories(a.memory_id, max_depth=3) == []

    @pytest.mark.asyncio
    async def test_zero_depth(self, graph_store):
        [a] = await add_nodes(graph_store, 1)

        assert await graph_store.related_memories(a.memory_id, max_depth=0) == []


class TestClusters:
    """Test tag clusters."""

    @pytest.mark.asyncio
    async def test_clusters_need_two_members(self, graph_store):
        a, b, c = await add_nodes(graph_store, 3)
        await graph_store.link_tags(a.memory_id, ["python", "solo"])
        await graph_store.link_tags(b.memory_id, ["python"])
        await graph_store.link_tags(c.memory_id, ["python"])

        [cluster] = await graph_store.concept_clusters()

        assert cluster.tag == "python"
        assert cluster.memory_count == 3
        assert cluster.confidence == pytest.approx(0.3)

    @pytest.mark.asyncio
    async def test_clusters_scoped_to_agent(self, graph_store):
        mine = await add_nodes(graph_store, 2, agent_id="agent-1")
        theirs = await add_nodes(graph_store, 2, agent_id="agent-2")
        for memory in mine + theirs[:1]:
            await graph_store.link_tags(memory.memory_id, ["shared"])

        [cluster] = await graph_store.concept_clusters(agent_id="agent-1")
        assert cluster.memory_count == 2
        assert await graph_store.concept_clusters(agent_id="agent-2") == []


class TestDeleteAndRepoint:
    """Test cascading delete and consolidation repointing."""

    @pytest.mark.asyncio
    async def test_delete_removes_edges_and_memberships(self, graph_store):
        a, b, c = await add_nodes(graph_store, 3)
        await graph_store.add_edge(a.memory_id, b.memory_id, "REFERENCES")
        await graph_store.add_edge(c.memory_id, a.memory_id, "REFERENCES")
        await graph_store.link_tags(a.memory_id, ["t"])
        await graph_store.link_tags(b.memory_id, ["t"])

        assert await graph_store.delete_memory(a.memory_id) is True

        assert await graph_store.connections(a.memory_id) == []
        assert await graph_store.connections() == []
        assert await graph_store.concept_clusters() == []
        assert await graph_store.delete_memory(a.memory_id) is False

    @pytest.mark.asyncio
    async def test_repoint_moves_edges(self, graph_store):
        survivor, absorbed, other = await add_nodes(graph_store, 3)
        await graph_store.add_edge(other.memory_id, absorbed.memory_id, "REFERENCES")
        await graph_store.add_edge(absorbed.memory_id, survivor.memory_id, "SIMILAR_TO")
        await graph_store.link_tags(absorbed.memory_id, ["t"])
        await graph_store.link_tags(other.memory_id, ["t"])

        moved = await graph_store.repoint_edges(absorbed.memory_id, survivor.memory_id)

        assert moved == 1
        [edge] = await graph_store.connections(survivor.memory_id)
        assert (edge.from_id, edge.to_id) == (other.memory_id, survivor.memory_id)
        assert await graph_store.connections(absorbed.memory_id) == []
        [cluster] = await graph_store.concept_clusters()
        assert survivor.memory_id in cluster.sample_memory_ids

    @pytest.mark.asyncio
    async def test_repoint_skips_edges_the_survivor_already_has(self, graph_store):
        """Test repointing does not duplicate an edge with the same endpoint and type."""
        survivor, absorbed, other = await add_nodes(graph_store, 3)
        await graph_store.ensure_entity_node("ops-bot", EntityType.AGENT)
        for memory in (survivor, absorbed):
            await graph_store.add_edge(
                "ops-bot", memory.memory_id, "CREATED", from_type=EntityType.AGENT
            )
        await graph_store.add_edge(other.memory_id, survivor.memory_id, "REFERENCES")
        await graph_store.add_edge(other.memory_id, absorbed.memory_id, "REFERENCES")
        await graph_store.add_edge(other.memory_id, absorbed.memory_id, "FOLLOWS")
        await graph_store.add_edge(absorbed.memory_id, other.memory_id, "REFERENCES")

        moved = await graph_store.repoint_edges(absorbed.memory_id, survivor.memory_id)

        assert moved == 2
        edges = await graph_store.connections(survivor.memory_id)
        assert sorted((e.from_id, e.to_id, e.relationship_type) for e in edges) == sorted(
            [
                ("ops-bot", survivor.memory_id, "CREATED"),
                (other.memory_id, survivor.memory_id, "REFERENCES"),
                (other.memory_id, survivor.memory_id, "FOLLOWS"),
                (survivor.memory_id, other.memory_id, "REFERENCES"),
            ]
        )
        assert await graph_store.connections(absorbed.memory_id) == []


def test_confidence_helpers():
    assert distance_confidence(1) == pytest.approx(0.8)
    assert distance_confidence(10) == pytest.approx(0.1)
    assert cluster_confidence(4) == pytest.approx(0.4)
    assert cluster_confidence(20) == 1.0
