"""
Neo4j Graph Relationship Store.

Graph layout:
    (:Memory {memory_id, content, type, content_type, agent_id, project, created_at})
    (:Agent {agent_id}), (:Session {session_id})
    (:Memory)-[:HAS_TAG]->(:Tag {name})
    (:Memory)-[:MENTIONS]->(:Concept {name})
    (a)-[:CONNECTS {connection_id, type, confidence, properties, created_at}]->(b)

Relationship labels are stored in the `type` property of a single CONNECTS
relationship type so they can be parameterized. Edge properties are kept
as a JSON string because Neo4j cannot store nested maps.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Optional

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
from memweave.knowledge.neo4j_client import Neo4jClient
from memweave.models.schemas import (
    ConceptCluster,
    Connection,
    EntityType,
    JsonProperties,
    Memory,
    MemoryType,
    RelatedMemory,
    generate_connection_id,
    utcnow,
)

logger = structlog.get_logger(__name__)

# Label and key property per entity type
ENTITY_NODES: dict[EntityType, tuple[str, str]] = {
    EntityType.MEMORY: ("Memory", "memory_id"),
    EntityType.AGENT: ("Agent", "agent_id"),
    EntityType.SESSION: ("Session", "session_id"),
}
LABEL_TO_ENTITY = {label: entity for entity, (label, _) in ENTITY_NODES.items()}

_EDGE_RETURN = """
RETURN r.connection_id AS connection_id,
       r.type AS relationship_type,
       r.confidence AS confidence,
       r.properties AS properties,
       r.created_at AS created_at,
       labels(a)[0] AS from_label,
       coalesce(a.memory_id, a.agent_id, a.session_id) AS from_id,
       labels(b)[0] AS to_label,
       coalesce(b.memory_id, b.agent_id, b.session_id) AS to_id
ORDER BY r.created_at DESC
LIMIT $limit
"""


def _node_pattern(variable: str, entity_type: EntityType, parameter: str) -> str:
    label, key = ENTITY_NODES[EntityType(entity_type)]
    return f"({variable}:{label} {{{key}: ${parameter}}})"


def _record_to_connection(record: dict[str, Any]) -> Connection:
    properties = record.get("properties")
    created_at = record.get("created_at")
    return Connection(
        connection_id=record["connection_id"] or generate_connection_id(),
        from_id=record["from_id"],
        to_id=record["to_id"],
        relationship_type=record["relationship_type"],
        from_type=LABEL_TO_ENTITY.get(record["from_label"], EntityType.MEMORY),
        to_type=LABEL_TO_ENTITY.get(record["to_label"], EntityType.MEMORY),
        properties=json.loads(properties) if properties else {},
        confidence=record.get("confidence") if record.get("confidence") is not None else 0.8,
        created_at=datetime.fromisoformat(created_at) if created_at else utcnow(),
    )


class Neo4jGraphStore:
    """
    GraphStore adapter over the async Neo4j driver.

    Usage:
        client = Neo4jClient()
        await client.connect()
        graph = Neo4jGraphStore(client)
        await graph.create_memory_node(memory)
    """

    def __init__(self, client: Neo4jClient) -> None:
        self._client = client

    async def create_memory_node(self, memory: Memory) -> str:
        query = """
        MERGE (m:Memory {memory_id: $memory_id})
        SET m += $props
        RETURN m.memory_id AS node_id
        """
        props = {
            "content": memory.content,
            "type": memory.type.value,
            "content_type": memory.content_type.value,
            "agent_id": memory.agent_id,
            "session_id": memory.session_id,
            "project": memory.project,
            "created_at": memory.created_at.isoformat(),
        }
        records = await self._client.run_write_query(
            query,
            {"memory_id": memory.memory_id, "props": {k: v for k, v in props.items() if v is not None}},
        )
        return records[0]["node_id"]

    async def ensure_entity_node(self, entity_id: str, entity_type: EntityType) -> None:
        query = f"""
        MERGE {_node_pattern("n", entity_type, "entity_id")}
        ON CREATE SET n.created_at = $now
        """
        await self._client.run_write_query(
            query, {"entity_id": entity_id, "now": utcnow().isoformat()}
        )

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
        """Create a CONNECTS edge; returns None when either endpoint is missing."""
        query = f"""
        MATCH {_node_pattern("a", from_type, "from_id")}
        MATCH {_node_pattern("b", to_type, "to_id")}
        CREATE (a)-[r:CONNECTS {{
            connection_id: $connection_id,
            type: $relationship_type,
            confidence: $confidence,
            properties: $properties,
            created_at: $created_at
        }}]->(b)
        RETURN r.connection_id AS connection_id
        """
        records = await self._client.run_write_query(
            query,
            {
                "from_id": from_id,
                "to_id": to_id,
                "connection_id": generate_connection_id(),
                "relationship_type": relationship_type,
                "confidence": confidence,
                "properties": json.dumps(properties or {}),
                "created_at": utcnow().isoformat(),
            },
        )
        if not records:
            logger.warning(
                "neo4j_edge_endpoint_missing",
                from_id=from_id,
                to_id=to_id,
                relationship_type=relationship_type,
            )
            return None
        return records[0]["connection_id"]

    async def link_tags(self, memory_id: str, tags: list[str]) -> int:
        if not tags:
            return 0
        query = """
        MATCH (m:Memory {memory_id: $memory_id})
        UNWIND $tags AS tag
        MERGE (t:Tag {name: tag})
        MERGE (m)-[:HAS_TAG]->(t)
        RETURN count(t) AS linked
        """
        records = await self._client.run_write_query(query, {"memory_id": memory_id, "tags": tags})
        return records[0]["linked"] if records else 0

    async def link_concepts(self, memory_id: str, concepts: list[str]) -> int:
        if not concepts:
            return 0
        query = """
        MATCH (m:Memory {memory_id: $memory_id})
        UNWIND $concepts AS concept
        MERGE (c:Concept {name: toLower(concept)})
        MERGE (m)-[:MENTIONS]->(c)
        RETURN count(c) AS linked
        """
        records = await self._client.run_write_query(
            query, {"memory_id": memory_id, "concepts": concepts}
        )
        return records[0]["linked"] if records else 0

    async def related_memories(self, memory_id: str, max_depth: int) -> list[RelatedMemory]:
        """Memories within max_depth CONNECTS hops, walking only through Memory nodes."""
        depth = int(max_depth)
        if depth < 1:
            return []
        # Variable-length bounds cannot be parameterized
        query = f"""
        MATCH path = (start:Memory {{memory_id: $memory_id}})-[:CONNECTS*1..{depth}]-(related:Memory)
        WHERE related <> start AND all(n IN nodes(path) WHERE n:Memory)
        WITH related, min(length(path)) AS distance
        RETURN related.memory_id AS memory_id,
               related.content AS content,
               related.type AS type,
               distance
        ORDER BY distance ASC, memory_id ASC
        LIMIT $limit
        """
        records = await self._client.run_query(
            query, {"memory_id": memory_id, "limit": MAX_RELATED_RESULTS}
        )
        return [
            RelatedMemory(
                memory_id=record["memory_id"],
                excerpt=excerpt(record.get("content") or ""),
                type=MemoryType(record["type"]) if record.get("type") else None,
                confidence=distance_confidence(record["distance"]),
                distance=record["distance"],
            )
            for record in records
        ]

    async def concept_clusters(self, agent_id: Optional[str] = None) -> list[ConceptCluster]:
        query = """
        MATCH (m:Memory)-[:HAS_TAG]->(t:Tag)
        WHERE $agent_id IS NULL OR m.agent_id = $agent_id
        WITH t.name AS tag, collect(m.memory_id) AS memory_ids
        WITH tag, memory_ids, size(memory_ids) AS memory_count
        WHERE memory_count >= $min_size
        RETURN tag, memory_count, memory_ids[0..$sample] AS sample_memory_ids
        ORDER BY memory_count DESC, tag ASC
        LIMIT $limit
        """
        records = await self._client.run_query(
            query,
            {
                "agent_id": agent_id,
                "min_size": MIN_CLUSTER_SIZE,
                "sample": MAX_CLUSTER_SAMPLE,
                "limit": MAX_CLUSTERS,
            },
        )
        return [
            ConceptCluster(
                tag=record["tag"],
                memory_count=record["memory_count"],
                sample_memory_ids=record["sample_memory_ids"],
                confidence=cluster_confidence(record["memory_count"]),
            )
            for record in records
        ]

    async def delete_memory(self, memory_id: str) -> bool:
        query = """
        MATCH (m:Memory {memory_id: $memory_id})
        DETACH DELETE m
        RETURN count(*) AS deleted
        """
        records = await self._client.run_write_query(query, {"memory_id": memory_id})
        deleted = bool(records and records[0]["deleted"])
        logger.info("neo4j_memory_deleted", memory_id=memory_id, deleted=deleted)
        return deleted

    async def connections(
        self,
        memory_id: Optional[str] = None,
        relationship_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[Connection]:
        query = """
        MATCH (a)-[r:CONNECTS]->(b)
        WHERE ($memory_id IS NULL
               OR (a:Memory AND a.memory_id = $memory_id)
               OR (b:Memory AND b.memory_id = $memory_id))
          AND ($relationship_type IS NULL OR r.type = $relationship_type)
        """ + _EDGE_RETURN
        records = await self._client.run_query(
            query,
            {"memory_id": memory_id, "relationship_type": relationship_type, "limit": limit},
        )
        return [_record_to_connection(record) for record in records]

    async def entity_connections(
        self,
        entity_id: str,
        entity_type: EntityType,
        limit: int = 50,
    ) -> list[Connection]:
        label, key = ENTITY_NODES[EntityType(entity_type)]
        query = f"""
        MATCH (a)-[r:CONNECTS]->(b)
        WHERE (a:{label} AND a.{key} = $entity_id) OR (b:{label} AND b.{key} = $entity_id)
        """ + _EDGE_RETURN
        records = await self._client.run_query(query, {"entity_id": entity_id, "limit": limit})
        return [_record_to_connection(record) for record in records]

    async def repoint_edges(self, from_memory_id: str, to_memory_id: str) -> int:
        """Move CONNECTS edges and tag links from one memory onto another."""
        params = {"old_id": from_memory_id, "survivor_id": to_memory_id}
        outgoing = await self._client.run_write_query(
            """
            MATCH (old:Memory {memory_id: $old_id})-[r:CONNECTS]->(target)
            MATCH (survivor:Memory {memory_id: $survivor_id})
            WHERE target <> survivor
            WITH survivor, target, r,
                 EXISTS { MATCH (survivor)-[e:CONNECTS]->(target) WHERE e.type = r.type } AS duplicate
            FOREACH (_ IN CASE WHEN duplicate THEN [] ELSE [1] END |
                CREATE (survivor)-[moved:CONNECTS]->(target)
                SET moved = properties(r))
            DELETE r
            RETURN count(CASE WHEN duplicate THEN NULL ELSE 1 END) AS repointed
            """,
            params,
        )
        incoming = await self._client.run_write_query(
            """
            MATCH (source)-[r:CONNECTS]->(old:Memory {memory_id: $old_id})
            MATCH (survivor:Memory {memory_id: $survivor_id})
            WHERE source <> survivor
            WITH survivor, source, r,
                 EXISTS { MATCH (source)-[e:CONNECTS]->(survivor) WHERE e.type = r.type } AS duplicate
            FOREACH (_ IN CASE WHEN duplicate THEN [] ELSE [1] END |
                CREATE (source)-[moved:CONNECTS]->(survivor)
                SET moved = properties(r))
            DELETE r
            RETURN count(CASE WHEN duplicate THEN NULL ELSE 1 END) AS repointed
            """,
            params,
        )
        await self._client.run_write_query(
            """
            MATCH (old:Memory {memory_id: $old_id})-[:HAS_TAG]->(t:Tag)
            MATCH (survivor:Memory {memory_id: $survivor_id})
            MERGE (survivor)-[:HAS_TAG]->(t)
            """,
            params,
        )
        repointed = outgoing[0]["repointed"] + incoming[0]["repointed"]
        logger.info(
            "neo4j_edges_repointed",
            from_memory_id=from_memory_id,
            to_memory_id=to_memory_id,
            repointed=repointed,
        )
        return repointed

    async def health_check(self) -> bool:
        try:
            await self._client.run_query("RETURN 1 AS ok")
        except Exception as e:
            logger.warning("neo4j_health_check_failed", error=str(e))
            return False
        return True
