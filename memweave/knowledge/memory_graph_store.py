"""In-process graph store for local mode and tests."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Optional

import structlog

from memweave.knowledge.graph_store import (
    MAX_CLUSTER_SAMPLE,
    MAX_CLUSTERS,
    MAX_RELATED_RESULTS,
    MIN_CLUSTER_SIZE,
    cluster_confidence,
    distance_confidence,
    excerpt,
)
from memweave.models.schemas import (
    ConceptCluster,
    Connection,
    EntityType,
    JsonProperties,
    Memory,
    MemoryType,
    RelatedMemory,
)

logger = structlog.get_logger(__name__)

NodeKey = tuple[EntityType, str]


class InMemoryGraphStore:
    """
    Adjacency kept as a dictionary of Connection objects.

    WARNING: Does not persist across restarts.
    """

    def __init__(self) -> None:
        self._nodes: dict[NodeKey, dict] = {}
        self._edges: dict[str, Connection] = {}
        self._tags: dict[str, set[str]] = {}
        self._concepts: dict[str, set[str]] = {}
        self._lock = asyncio.Lock()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    async def create_memory_node(self, memory: Memory) -> str:
        async with self._lock:
            self._nodes[(EntityType.MEMORY, memory.memory_id)] = {
                "memory_id": memory.memory_id,
                "content": memory.content,
                "type": memory.type.value,
                "content_type": memory.content_type.value,
                "agent_id": memory.agent_id,
                "project": memory.project,
            }
        return memory.memory_id

    async def ensure_entity_node(self, entity_id: str, entity_type: EntityType) -> None:
        async with self._lock:
            self._nodes.setdefault((EntityType(entity_type), entity_id), {"id": entity_id})

    async def add_edge(
        self,
        from_id: str,
        to_id: str,
        relationship_type: str,
        properties: Optional[JsonProperties] = None,
        confidence: float = 0.8,
        from_type: EntityType = EntityType.MEMORY,
        to_type: EntityType = EntityType.MEMORY,
    ) -> Optional[str]:
        async with self._lock:
            if (EntityType(from_type), from_id) not in self._nodes:
                return None
            if (EntityType(to_type), to_id) not in self._nodes:
                return None

            edge = Connection(
                from_id=from_id,
                to_id=to_id,
                relationship_type=relationship_type,
                from_type=from_type,
                to_type=to_type,
                properties=dict(properties or {}),
                confidence=confidence,
            )
            self._edges[edge.connection_id] = edge
        return edge.connection_id

    async def link_tags(self, memory_id: str, tags: list[str]) -> int:
        async with self._lock:
            for tag in tags:
                self._tags.setdefault(tag, set()).add(memory_id)
        return len(tags)

    async def link_concepts(self, memory_id: str, concepts: list[str]) -> int:
        async with self._lock:
            for concept in concepts:
                self._concepts.setdefault(concept.lower(), set()).add(memory_id)
        return len(concepts)

    async def delete_memory(self, memory_id: str) -> bool:
        async with self._lock:
            existed = self._nodes.pop((EntityType.MEMORY, memory_id), None) is not None
            for connection_id in [
                cid for cid, edge in self._edges.items() if self._touches(edge, memory_id)
            ]:
                del self._edges[connection_id]
            for members in list(self._tags.values()) + list(self._concepts.values()):
                members.discard(memory_id)
        return existed

    async def repoint_edges(self, from_memory_id: str, to_memory_id: str) -> int:
        """Move edges and tag memberships from one memory node onto another."""
        repointed = 0
        async with self._lock:
            existing = {
                self._signature(edge)
                for edge in self._edges.values()
                if not self._touches(edge, from_memory_id)
            }
            for edge in list(self._edges.values()):
                if not self._touches(edge, from_memory_id):
                    continue
                del self._edges[edge.connection_id]

                from_id = to_memory_id if self._is_memory(edge, "from", from_memory_id) else edge.from_id
                to_id = to_memory_id if self._is_memory(edge, "to", from_memory_id) else edge.to_id
                if from_id == to_id and edge.from_type == edge.to_type:
                    continue

                moved = edge.model_copy(update={"from_id": from_id, "to_id": to_id})
                # the survivor already has this edge
                if self._signature(moved) in existing:
                    continue
                existing.add(self._signature(moved))
                self._edges[moved.connection_id] = moved
                repointed += 1

            for members in list(self._tags.values()) + list(self._concepts.values()):
                if from_memory_id in members:
                    members.discard(from_memory_id)
                    members.add(to_memory_id)
        return repointed

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def related_memories(self, memory_id: str, max_depth: int) -> list[RelatedMemory]:
        """Breadth-first walk over memory-to-memory edges, at most max_depth hops."""
        if max_depth < 1:
            return []

        async with self._lock:
            if (EntityType.MEMORY, memory_id) not in self._nodes:
                return []

            adjacency: dict[str, set[str]] = {}
            for edge in self._edges.values():
                if edge.from_type == EntityType.MEMORY and edge.to_type == EntityType.MEMORY:
                    adjacency.setdefault(edge.from_id, set()).add(edge.to_id)
                    adjacency.setdefault(edge.to_id, set()).add(edge.from_id)

            distances = {memory_id: 0}
            queue = deque([memory_id])
            while queue:
                current = queue.popleft()
                if distances[current] >= max_depth:
                    continue
                for neighbor in sorted(adjacency.get(current, ())):
                    if neighbor not in distances:
                        distances[neighbor] = distances[current] + 1
                        queue.append(neighbor)

            related = []
            for related_id, distance in sorted(distances.items(), key=lambda item: (item[1], item[0])):
                node = self._nodes.get((EntityType.MEMORY, related_id))
                if related_id == memory_id or node is None:
                    continue
                related.append(
                    RelatedMemory(
                        memory_id=related_id,
                        excerpt=excerpt(node["content"]),
                        type=MemoryType(node["type"]),
                        confidence=distance_confidence(distance),
                        distance=distance,
                    )
                )
        return related[:MAX_RELATED_RESULTS]

    async def concept_clusters(self, agent_id: Optional[str] = None) -> list[ConceptCluster]:
        async with self._lock:
            clusters = []
            for tag, members in self._tags.items():
                member_ids = sorted(
                    mid for mid in members
                    if (node := self._nodes.get((EntityType.MEMORY, mid))) is not None
                    and (agent_id is None or node.get("agent_id") == agent_id)
                )
                if len(member_ids) >= MIN_CLUSTER_SIZE:
                    clusters.append(
                        ConceptCluster(
                            tag=tag,
                            memory_count=len(member_ids),
                            sample_memory_ids=member_ids[:MAX_CLUSTER_SAMPLE],
                            confidence=cluster_confidence(len(member_ids)),
                        )
                    )
        clusters.sort(key=lambda c: (-c.memory_count, c.tag))
        return clusters[:MAX_CLUSTERS]

    async def connections(
        self,
        memory_id: Optional[str] = None,
        relationship_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[Connection]:
        async with self._lock:
            edges = [
                edge for edge in self._edges.values()
                if (memory_id is None or self._touches(edge, memory_id))
                and (relationship_type is None or edge.relationship_type == relationship_type)
            ]
        edges.sort(key=lambda e: e.created_at, reverse=True)
        return edges[:limit]

    async def entity_connections(
        self,
        entity_id: str,
        entity_type: EntityType,
        limit: int = 50,
    ) -> list[Connection]:
        entity_type = EntityType(entity_type)
        async with self._lock:
            edges = [
                edge for edge in self._edges.values()
                if (edge.from_type == entity_type and edge.from_id == entity_id)
                or (edge.to_type == entity_type and edge.to_id == entity_id)
            ]
        edges.sort(key=lambda e: e.created_at, reverse=True)
        return edges[:limit]

    async def health_check(self) -> bool:
        return True

    @staticmethod
    def _signature(edge: Connection) -> tuple:
        return (edge.from_type, edge.from_id, edge.to_type, edge.to_id, edge.relationship_type)

    @staticmethod
    def _is_memory(edge: Connection, end: str, memory_id: str) -> bool:
        if end == "from":
            return edge.from_type == EntityType.MEMORY and edge.from_id == memory_id
        return edge.to_type == EntityType.MEMORY and edge.to_id == memory_id

    @classmethod
    def _touches(cls, edge: Connection, memory_id: str) -> bool:
        return cls._is_memory(edge, "from", memory_id) or cls._is_memory(edge, "to", memory_id)
