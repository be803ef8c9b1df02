"""
Graph Relationship Store interface.

Node kinds: Memory, Tag, Concept, Agent, Session. Edges are directed,
typed and weighted; related-memory traversal only walks memory-to-memory
edges and always carries an explicit depth bound.
"""

from __future__ import annotations

from typing import Optional, Protocol

from memweave.models.schemas import (
    ConceptCluster,
    Connection,
    EntityType,
    JsonProperties,
    Memory,
    RelatedMemory,
)

MAX_RELATED_RESULTS = 20
MAX_CLUSTERS = 10
MAX_CLUSTER_SAMPLE = 10
MIN_CLUSTER_SIZE = 2


def distance_confidence(distance: int) -> float:
    """Confidence decays 0.2 per hop with a floor of 0.1."""
    return max(0.1, 1.0 - 0.2 * distance)


def cluster_confidence(memory_count: int) -> float:
    return min(1.0, memory_count * 0.1)


def excerpt(content: str, length: int = 100) -> str:
    return content[:length] + "..." if len(content) > length else content


class GraphStore(Protocol):
    """Capability interface consumed by the orchestrator."""

    async def create_memory_node(self, memory: Memory) -> str: ...

    async def ensure_entity_node(self, entity_id: str, entity_type: EntityType) -> None: ...

    async def add_edge(
        self,
        from_id: str,
        to_id: str,
        relationship_type: str,
        properties: Optional[JsonProperties] = None,
        confidence: float = 0.8,
        from_type: EntityType = EntityType.MEMORY,
        to_type: EntityType = EntityType.MEMORY,
    ) -> Optional[str]: ...

    async def link_tags(self, memory_id: str, tags: list[str]) -> int: ...

    async def link_concepts(self, memory_id: str, concepts: list[str]) -> int: ...

    async def related_memories(self, memory_id: str, max_depth: int) -> list[RelatedMemory]: ...

    async def concept_clusters(self, agent_id: Optional[str] = None) -> list[ConceptCluster]: ...

    async def delete_memory(self, memory_id: str) -> bool: ...

    async def connections(
        self,
        memory_id: Optional[str] = None,
        relationship_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[Connection]: ...

    async def entity_connections(
        self,
        entity_id: str,
        entity_type: EntityType,
        limit: int = 50,
    ) -> list[Connection]: ...

    async def repoint_edges(self, from_memory_id: str, to_memory_id: str) -> int: ...

    async def health_check(self) -> bool: ...
