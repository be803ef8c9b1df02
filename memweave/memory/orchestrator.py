"""
Memory Orchestrator.

Coordinates the three stores behind every public memory operation:

- Metadata store (through the storage strategy selector): authoritative.
  A failed metadata write fails the operation.
- Vector store and graph store: best-effort. Failures are logged and the
  operation carries on without them.

Every public method accepts an optional Deadline that bounds each store
call it makes. Cancelling the calling task cancels the in-flight calls.

Usage:
    orchestrator = MemoryOrchestrator(
        metadata=selector,
        vector_store=vector_store,
        graph_store=graph_store,
        embeddings=generator,
        resolver=GitDefaultResolver(),
    )
    result = await orchestrator.store_memory(StoreMemoryRequest(content="..."))
"""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from datetime import timedelta
from typing import Any, Awaitable, Optional, TypeVar

import structlog

from memweave.config.settings import Settings, get_settings
from memweave.core.deadline import Deadline, run_with_deadline
from memweave.core.exceptions import (
    DeadlineExceededError,
    MemoryNotFoundError,
    PartialWriteFailure,
    StoreUnavailableError,
    ValidationFailureError,
)
from memweave.knowledge.embeddings import EmbeddingGenerator
from memweave.knowledge.graph_store import GraphStore
from memweave.knowledge.vector_store import VectorQuery, VectorStore, index_for, make_store_id
from memweave.memory.analysis import build_features, extract_concepts
from memweave.memory.classification import (
    Classifier,
    default_content_classifier,
    default_memory_type_classifier,
)
from memweave.memory.consolidation import (
    CandidateFinder,
    PairwiseSimilarityFinder,
    choose_survivor,
    merge_updates,
)
from memweave.memory.defaults import DefaultResolver
from memweave.models.schemas import (
    AddConnectionRequest,
    AddConnectionResult,
    AgentProfile,
    AgentSummary,
    CodeFeatures,
    ConnectionsResult,
    ConsolidateMemoriesRequest,
    ConsolidateMemoriesResult,
    ConsolidationPair,
    ContentType,
    CreateObservationRequest,
    CreateObservationResult,
    DeleteMemoryResult,
    EntityType,
    Memory,
    MemorySearchResult,
    MemoryStatistics,
    MemoryType,
    ProjectSummary,
    RelationshipType,
    RetrieveMemoriesRequest,
    RetrieveMemoriesResult,
    StoreMemoryRequest,
    StoreMemoryResult,
    generate_memory_id,
    utcnow,
)
from memweave.monitoring.metrics import track_store_operation
from memweave.storage.base import MetadataStore
from memweave.storage.strategy import StorageStrategySelector

logger = structlog.get_logger(__name__)

T = TypeVar("T")

ATTRIBUTION_CONFIDENCE = 1.0
OBSERVATION_CONFIDENCE = 0.8
OBSERVATION_TAG = "observation"



def _merge_by_id(active: list[Memory], inactive: list[Memory]) -> list[Memory]:
    """Union of two listings; the active store's copy of a record wins."""
    seen = {memory.memory_id for memory in active}
    return active + [memory for memory in inactive if memory.memory_id not in seen]


class MemoryOrchestrator:
    """
    Public surface of the memory engine.

    Args:
        metadata: Strategy selector wrapping the metadata stores
        vector_store: Vector search adapter
        graph_store: Graph relationship adapter
        embeddings: Tiered embedding generator
        resolver: Supplies agent_id/project when a request omits them
        content_classifier: Assigns text/code when content_type is absent
        memory_type_classifier: Assigns the memory type when absent
        candidate_finder: Proposes consolidation pairs
        settings: Limits, thresholds and TTLs (default: get_settings())
    """

    def __init__(
        self,
        metadata: StorageStrategySelector,
        vector_store: VectorStore,
        graph_store: GraphStore,
        embeddings: EmbeddingGenerator,
        resolver: DefaultResolver,
        content_classifier: Optional[Classifier[ContentType]] = None,
        memory_type_classifier: Optional[Classifier[MemoryType]] = None,
        candidate_finder: Optional[CandidateFinder] = None,
        settings: Optional[Settings] = None,
    ):
        self._metadata = metadata
        self._vector = vector_store
        self._graph = graph_store
        self._embeddings = embeddings
        self._resolver = resolver
        self._content_classifier = content_classifier or default_content_classifier()
        self._memory_type_classifier = memory_type_classifier or default_memory_type_classifier()
        self._candidate_finder = candidate_finder or PairwiseSimilarityFinder()
        self._settings = settings or get_settings()

    # =========================================================================
    # Store Call Plumbing
    # =========================================================================

    def _deadline(self, deadline: Optional[Deadline]) -> Optional[Deadline]:
        if deadline is None and self._settings.operation_timeout_seconds:
            return Deadline.after(self._settings.operation_timeout_seconds)
        return deadline

    async def _call(
        self,
        store: str,
        operation: str,
        awaitable: Awaitable[T],
        deadline: Optional[Deadline],
    ) -> T:
        with track_store_operation(store, operation):
            return await run_with_deadline(awaitable, deadline, f"{store}.{operation}")

    async def _soft(
        self,
        store: str,
        operation: str,
        awaitable: Awaitable[T],
        deadline: Optional[Deadline],
        default: Any = None,
        **context: Any,
    ) -> Any:
        """Run a best-effort call; failures other than the deadline yield `default`."""
        try:
            return await self._call(store, operation, awaitable, deadline)
        except DeadlineExceededError:
            raise
        except Exception as e:
            logger.warning(
                "store_operation_failed",
                store=store,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
                **context,
            )
            return default

    async def _get_memory(
        self,
        memory_id: str,
        deadline: Optional[Deadline],
        track_access: bool = True,
    ) -> Optional[Memory]:
        async def _get(store: MetadataStore) -> Optional[Memory]:
            return await store.get_memory(memory_id, track_access=track_access)

        return await self._call(
            "metadata",
            "get_memory",
            self._metadata.read_with_fallback(_get, "get_memory"),
            deadline,
        )

    async def _list_memories(self, deadline: Optional[Deadline]) -> list[Memory]:
        async def _list(store: MetadataStore) -> list[Memory]:
            return await store.list_memories()

        return await self._call(
            "metadata",
            "list_memories",
            self._metadata.execute_everywhere(_list, "list_memories", combine=_merge_by_id),
            deadline,
        )

    # =========================================================================
    # Store
    # =========================================================================

    async def store_memory(
        self,
        request: StoreMemoryRequest,
        deadline: Optional[Deadline] = None,
    ) -> StoreMemoryResult:
        """
        Classify, embed and fan a new memory out to all three stores.

        Raises:
            StoreUnavailableError: If the metadata write fails on both stores.
            DeadlineExceededError: If the deadline runs out.
        """
        deadline = self._deadline(deadline)
        memory_id = generate_memory_id()

        agent_id, project = request.agent_id, request.project
        if not agent_id or not project:
            defaults = await run_with_deadline(
                self._resolver.resolve(), deadline, "resolver.resolve"
            )
            agent_id = agent_id or defaults.agent_id
            project = project or defaults.project

        content_type = request.content_type or self._content_classifier.classify(request.content)
        memory_type = request.type or self._memory_type_classifier.classify(
            request.content, content_type
        )

        embedding = await run_with_deadline(
            self._embeddings.generate(request.content, content_type, request.language),
            deadline,
            "embeddings.generate",
        )

        now = utcnow()
        memory = Memory(
            memory_id=memory_id,
            type=memory_type,
            content_type=content_type,
            content=request.content,
            embedding=embedding.embedding,
            agent_id=agent_id,
            session_id=request.session_id,
            project=project,
            tags=request.tags,
            context=request.metadata,
            features=build_features(request.content, content_type, request.language),
            confidence=request.confidence,
            created_at=now,
            updated_at=now,
            last_accessed=now,
            vector_index=index_for(content_type),
        )
        if memory_type == MemoryType.WORKING:
            memory.expires_at = now + timedelta(seconds=self._settings.working_memory_ttl_seconds)

        vector_store_id, graph_node_id = await asyncio.gather(
            self._soft(
                "vector",
                "index_memory",
                self._vector.index_memory(memory, embedding.embedding),
                deadline,
                memory_id=memory_id,
            ),
            self._write_graph(memory, deadline),
        )
        memory.vector_store_id = vector_store_id
        memory.graph_node_id = graph_node_id

        async def _put(store: MetadataStore) -> None:
            await store.put_memory(memory)

        try:
            await self._call(
                "metadata",
                "put_memory",
                self._metadata.execute_with_fallback(_put, "put_memory"),
                deadline,
            )
        except DeadlineExceededError:
            raise
        except Exception as e:
            logger.error("memory_store_failed", memory_id=memory_id, error=str(e))
            raise StoreUnavailableError(
                "metadata",
                f"Failed to persist memory metadata: {e}",
                {"memory_id": memory_id},
            ) from e

        await self._record_activity(memory, deadline)

        failed_stores = [
            name
            for name, store_id in (("vector", vector_store_id), ("graph", graph_node_id))
            if store_id is None
        ]
        if failed_stores:
            failure = PartialWriteFailure(memory_id, failed_stores)
            logger.warning("partial_write_failure", **failure.details)

        logger.info(
            "memory_stored",
            memory_id=memory_id,
            type=memory_type.value,
            content_type=content_type.value,
            agent_id=agent_id,
            project=project,
            embedding_model=embedding.model_used,
        )
        return StoreMemoryResult(
            memory_id=memory_id,
            success=True,
            type=memory_type,
            content_type=content_type,
            vector_store_id=vector_store_id,
            graph_node_id=graph_node_id,
            embedding_model=embedding.model_used,
            partial_failures=failed_stores,
        )

    async def _write_graph(self, memory: Memory, deadline: Optional[Deadline]) -> Optional[str]:
        """Create the memory node, then attribution edges and tag/concept links."""
        node_id = await self._soft(
            "graph",
            "create_memory_node",
            self._graph.create_memory_node(memory),
            deadline,
            memory_id=memory.memory_id,
        )
        if node_id is None:
            return None

        if memory.agent_id:
            await self._soft(
                "graph",
                "ensure_agent_node",
                self._graph.ensure_entity_node(memory.agent_id, EntityType.AGENT),
                deadline,
            )
            await self._soft(
                "graph",
                "add_created_edge",
                self._graph.add_edge(
                    memory.agent_id,
                    memory.memory_id,
                    RelationshipType.CREATED.value,
                    confidence=ATTRIBUTION_CONFIDENCE,
                    from_type=EntityType.AGENT,
                    to_type=EntityType.MEMORY,
                ),
                deadline,
            )

        if memory.session_id:
            await self._soft(
                "graph",
                "ensure_session_node",
                self._graph.ensure_entity_node(memory.session_id, EntityType.SESSION),
                deadline,
            )
            await self._soft(
                "graph",
                "add_in_session_edge",
                self._graph.add_edge(
                    memory.memory_id,
                    memory.session_id,
                    RelationshipType.IN_SESSION.value,
                    confidence=ATTRIBUTION_CONFIDENCE,
                    from_type=EntityType.MEMORY,
                    to_type=EntityType.SESSION,
                ),
                deadline,
            )

        if memory.tags:
            await self._soft(
                "graph", "link_tags", self._graph.link_tags(memory.memory_id, memory.tags), deadline
            )

        concepts = extract_concepts(memory.content) if memory.content_type == ContentType.TEXT else []
        if concepts:
            await self._soft(
                "graph",
                "link_concepts",
                self._graph.link_concepts(memory.memory_id, concepts),
                deadline,
            )

        return node_id

    async def _record_activity(self, memory: Memory, deadline: Optional[Deadline]) -> None:
        """Session ring buffer and agent profile, both best-effort."""
        if memory.session_id:
            window = self._settings.session_window_size

            async def _record_session(store: MetadataStore) -> Any:
                return await store.record_session_memory(
                    memory.session_id,
                    memory.memory_id,
                    agent_id=memory.agent_id,
                    project=memory.project,
                    window=window,
                )

            await self._soft(
                "metadata",
                "record_session_memory",
                self._metadata.execute_with_fallback(_record_session, "record_session_memory"),
                deadline,
            )

        if memory.agent_id:
            async def _upsert_profile(store: MetadataStore) -> None:
                profile = await store.get_agent_profile(memory.agent_id)
                if profile is None:
                    profile = AgentProfile(agent_id=memory.agent_id)
                profile.record_memory(memory.project)
                await store.put_agent_profile(profile)

            await self._soft(
                "metadata",
                "upsert_agent_profile",
                self._metadata.execute_with_fallback(_upsert_profile, "upsert_agent_profile"),
                deadline,
            )

    # =========================================================================
    # Retrieve
    # =========================================================================

    async def retrieve_memories(
        self,
        request: RetrieveMemoriesRequest,
        deadline: Optional[Deadline] = None,
    ) -> RetrieveMemoriesResult:
        """
        Retrieve memories by ids, by semantic query, or by filtered listing.

        The strategy follows the request shape in that priority order.
        """
        deadline = self._deadline(deadline)
        limit = min(request.limit, self._settings.max_memories_per_query)
        offset = request.offset

        if request.memory_ids:
            strategy = "ids"
            found = await asyncio.gather(
                *(self._get_memory(memory_id, deadline) for memory_id in request.memory_ids)
            )
            ranked = [(memory, 1.0) for memory in found if memory is not None]
        elif request.query:
            strategy = "query"
            ranked = await self._semantic_search(request, offset + limit + 1, deadline)
        else:
            strategy = "filter"
            memories = [m for m in await self._list_memories(deadline) if self._matches(m, request)]
            memories.sort(key=lambda m: m.created_at, reverse=True)
            ranked = [(memory, None) for memory in memories]

        total_count = len(ranked)
        page = [
            MemorySearchResult(memory=memory, similarity_score=score)
            for memory, score in ranked[offset : offset + limit]
        ]

        if request.include_related:
            await asyncio.gather(*(self._attach_related(result, deadline) for result in page))

        logger.info(
            "memories_retrieved",
            strategy=strategy,
            returned=len(page),
            total_count=total_count,
        )
        return RetrieveMemoriesResult(
            memories=page,
            total_count=total_count,
            has_more=offset + limit < total_count,
            strategy=strategy,
        )

    async def _semantic_search(
        self,
        request: RetrieveMemoriesRequest,
        candidates: int,
        deadline: Optional[Deadline],
    ) -> list[tuple[Memory, Optional[float]]]:
        content_type = request.content_type or ContentType.TEXT
        embedding = await run_with_deadline(
            self._embeddings.generate(request.query, content_type, is_query=True),
            deadline,
            "embeddings.generate",
        )

        threshold = request.threshold
        if threshold is None:
            threshold = self._settings.default_similarity_threshold

        query = VectorQuery(
            query_text=request.query,
            limit=candidates,
            content_type=request.content_type,
            type=request.type,
            agent_id=request.agent_id,
            session_id=request.session_id,
            project=request.project,
            tags=request.tags or [],
            threshold=threshold,
        )
        try:
            hits = await self._call(
                "vector", "search", self._vector.search(query, embedding.embedding), deadline
            )
        except DeadlineExceededError:
            raise
        except Exception as e:
            logger.error("vector_search_failed", error=str(e), error_type=type(e).__name__)
            raise StoreUnavailableError("vector", f"Vector search failed: {e}") from e

        live = await asyncio.gather(
            *(self._get_memory(hit.memory.memory_id, deadline) for hit in hits)
        )
        ranked = []
        for hit, memory in zip(hits, live):
            if memory is None:
                logger.debug("vector_hit_without_metadata", memory_id=hit.memory.memory_id)
                continue
            ranked.append((memory, hit.score))
        return ranked

    @staticmethod
    def _matches(memory: Memory, request: RetrieveMemoriesRequest) -> bool:
        if request.agent_id is not None and memory.agent_id != request.agent_id:
            return False
        if request.session_id is not None and memory.session_id != request.session_id:
            return False
        if request.project is not None and memory.project != request.project:
            return False
        if request.type is not None and memory.type != request.type:
            return False
        if request.content_type is not None and memory.content_type != request.content_type:
            return False
        if request.tags and not set(request.tags) & set(memory.tags):
            return False
        return True

    async def _attach_related(self, result: MemorySearchResult, deadline: Optional[Deadline]) -> None:
        related = await self._soft(
            "graph",
            "related_memories",
            self._graph.related_memories(
                result.memory.memory_id, self._settings.related_memory_depth
            ),
            deadline,
            default=[],
            memory_id=result.memory.memory_id,
        )
        if not related:
            return

        resolved = await asyncio.gather(
            *(self._get_memory(r.memory_id, deadline, track_access=False) for r in related)
        )
        result.related = related
        result.related_memories = [memory for memory in resolved if memory is not None]

    # =========================================================================
    # Delete
    # =========================================================================

    async def delete_memory(
        self,
        memory_id: str,
        deadline: Optional[Deadline] = None,
    ) -> DeleteMemoryResult:
        """
        Delete a memory from all three stores concurrently.

        Raises:
            MemoryNotFoundError: If no metadata exists for memory_id.
            StoreUnavailableError: If the metadata delete fails.
        """
        deadline = self._deadline(deadline)
        memory = await self._get_memory(memory_id, deadline, track_access=False)
        if memory is None:
            raise MemoryNotFoundError(memory_id)

        async def _delete(store: MetadataStore) -> bool:
            return await store.delete_memory(memory_id)

        vector_deleted, graph_deleted, metadata_outcome = await asyncio.gather(
            self._soft(
                "vector",
                "delete_memory",
                self._vector.delete_memory(memory_id, memory.content_type),
                deadline,
                default=False,
                memory_id=memory_id,
            ),
            self._soft(
                "graph",
                "delete_memory",
                self._graph.delete_memory(memory_id),
                deadline,
                default=False,
                memory_id=memory_id,
            ),
            self._call(
                "metadata",
                "delete_memory",
                self._metadata.execute_everywhere(
                    _delete,
                    "delete_memory",
                    combine=lambda active, inactive: active or inactive,
                ),
                deadline,
            ),
            return_exceptions=True,
        )

        for outcome in (vector_deleted, graph_deleted, metadata_outcome):
            if isinstance(outcome, DeadlineExceededError):
                raise outcome
        if isinstance(metadata_outcome, BaseException):
            if not isinstance(metadata_outcome, Exception):
                raise metadata_outcome
            raise StoreUnavailableError(
                "metadata",
                f"Failed to delete memory metadata: {metadata_outcome}",
                {"memory_id": memory_id},
            ) from metadata_outcome

        logger.info(
            "memory_deleted",
            memory_id=memory_id,
            metadata_deleted=metadata_outcome,
            vector_deleted=vector_deleted,
            graph_deleted=graph_deleted,
        )
        return DeleteMemoryResult(
            memory_id=memory_id,
            success=bool(metadata_outcome),
            metadata_deleted=bool(metadata_outcome),
            vector_deleted=bool(vector_deleted),
            graph_deleted=bool(graph_deleted),
        )

    # =========================================================================
    # Connections & Observations
    # =========================================================================

    async def add_connection(
        self,
        request: AddConnectionRequest,
        deadline: Optional[Deadline] = None,
    ) -> AddConnectionResult:
        """
        Connect two memories, optionally in both directions.

        Raises:
            ValidationFailureError: If an endpoint does not exist or the
                properties are not JSON-serializable.
        """
        deadline = self._deadline(deadline)
        try:
            json.dumps(request.properties)
        except (TypeError, ValueError) as e:
            raise ValidationFailureError(
                "Connection properties must be JSON-serializable",
                {"error": str(e)},
            ) from e

        endpoints = await asyncio.gather(
            self._get_memory(request.from_memory_id, deadline, track_access=False),
            self._get_memory(request.to_memory_id, deadline, track_access=False),
        )
        missing = [
            memory_id
            for memory_id, memory in zip((request.from_memory_id, request.to_memory_id), endpoints)
            if memory is None
        ]
        if missing:
            raise ValidationFailureError(
                "Connection references a memory that does not exist",
                {"missing_memory_ids": missing},
            )

        connection_id = await self._soft(
            "graph",
            "add_edge",
            self._graph.add_edge(
                request.from_memory_id,
                request.to_memory_id,
                request.relationship_type,
                properties=request.properties,
                confidence=request.confidence,
            ),
            deadline,
        )

        reverse_connection_id = None
        if request.bidirectional:
            reverse_connection_id = await self._soft(
                "graph",
                "add_edge",
                self._graph.add_edge(
                    request.to_memory_id,
                    request.from_memory_id,
                    request.relationship_type,
                    properties=request.properties,
                    confidence=request.confidence,
                ),
                deadline,
            )

        edges_created = sum(1 for cid in (connection_id, reverse_connection_id) if cid is not None)
        logger.info(
            "connection_added",
            from_memory_id=request.from_memory_id,
            to_memory_id=request.to_memory_id,
            relationship_type=request.relationship_type,
            bidirectional=request.bidirectional,
            edges_created=edges_created,
        )
        return AddConnectionResult(
            success=connection_id is not None,
            connection_id=connection_id,
            reverse_connection_id=reverse_connection_id,
            bidirectional=request.bidirectional,
            edges_created=edges_created,
        )

    async def create_observation(
        self,
        request: CreateObservationRequest,
        deadline: Optional[Deadline] = None,
    ) -> CreateObservationResult:
        """Store an observation as a semantic memory and link it to what it observes."""
        deadline = self._deadline(deadline)
        stored = await self.store_memory(
            StoreMemoryRequest(
                content=request.observation,
                type=MemoryType.SEMANTIC,
                content_type=ContentType.TEXT,
                agent_id=request.agent_id,
                session_id=request.session_id,
                project=request.project,
                tags=[OBSERVATION_TAG, *request.tags],
                confidence=request.confidence,
            ),
            deadline,
        )

        edge_ids = await asyncio.gather(
            *(
                self._soft(
                    "graph",
                    "add_edge",
                    self._graph.add_edge(
                        stored.memory_id,
                        related_id,
                        RelationshipType.OBSERVES.value,
                        confidence=OBSERVATION_CONFIDENCE,
                    ),
                    deadline,
                )
                for related_id in request.related_memory_ids
            )
        )
        failed = [
            related_id
            for related_id, edge_id in zip(request.related_memory_ids, edge_ids)
            if edge_id is None
        ]

        logger.info(
            "observation_created",
            observation_id=stored.memory_id,
            connections_created=len(edge_ids) - len(failed),
            failed_connections=len(failed),
        )
        return CreateObservationResult(
            observation_id=stored.memory_id,
            success=stored.success,
            connections_created=len(edge_ids) - len(failed),
            failed_connections=failed,
        )

    async def retrieve_connections(
        self,
        memory_id: Optional[str] = None,
        relationship_type: Optional[str] = None,
        limit: int = 50,
        deadline: Optional[Deadline] = None,
    ) -> ConnectionsResult:
        connections = await self._soft(
            "graph",
            "connections",
            self._graph.connections(memory_id, relationship_type, limit),
            self._deadline(deadline),
            default=[],
        )
        return ConnectionsResult(connections=connections)

    async def connections_by_entity(
        self,
        entity_id: str,
        entity_type: EntityType = EntityType.MEMORY,
        limit: int = 50,
        deadline: Optional[Deadline] = None,
    ) -> ConnectionsResult:
        connections = await self._soft(
            "graph",
            "entity_connections",
            self._graph.entity_connections(entity_id, entity_type, limit),
            self._deadline(deadline),
            default=[],
        )
        return ConnectionsResult(connections=connections)

    # =========================================================================
    # Consolidation
    # =========================================================================

    async def consolidate_memories(
        self,
        request: ConsolidateMemoriesRequest,
        deadline: Optional[Deadline] = None,
    ) -> ConsolidateMemoriesResult:
        """
        Merge near-duplicate memories.

        The survivor keeps the higher access count (ties: the older memory),
        absorbs the other's tags, counts and graph edges, and the absorbed
        memory is deleted. With dry_run the planned pairs are reported and
        nothing is changed.
        """
        deadline = self._deadline(deadline)
        threshold = request.similarity_threshold
        if threshold is None:
            threshold = self._settings.consolidation_threshold
        limit = request.max_consolidations or self._settings.max_consolidations

        memories = await self._list_memories(deadline)
        if request.agent_id is not None:
            memories = [m for m in memories if m.agent_id == request.agent_id]
        memories = self._scan_window(memories)

        embeddings = await self._collect_embeddings(memories, deadline)
        candidates = self._candidate_finder.find_candidates(memories, embeddings, threshold, limit)

        result = ConsolidateMemoriesResult(
            consolidations=0,
            memories_merged=0,
            connections_updated=0,
            dry_run=request.dry_run,
        )
        for candidate in candidates:
            survivor, absorbed = choose_survivor(candidate.first, candidate.second)
            pair = ConsolidationPair(
                survivor_id=survivor.memory_id,
                merged_id=absorbed.memory_id,
                similarity=candidate.similarity,
            )
            if request.dry_run:
                result.pairs.append(pair)
                continue

            try:
                repointed = await self._merge_pair(
                    survivor, absorbed, candidate.similarity, embeddings, deadline
                )
            except DeadlineExceededError:
                raise
            except Exception as e:
                logger.warning(
                    "consolidation_pair_failed",
                    survivor_id=survivor.memory_id,
                    merged_id=absorbed.memory_id,
                    error=str(e),
                )
                continue

            result.pairs.append(pair)
            result.consolidations += 1
            result.memories_merged += 1
            result.connections_updated += repointed

        logger.info(
            "memories_consolidated",
            agent_id=request.agent_id,
            candidates=len(candidates),
            consolidations=result.consolidations,
            connections_updated=result.connections_updated,
            dry_run=request.dry_run,
        )
        return result

    def _scan_window(self, memories: list[Memory]) -> list[Memory]:
        """Newest `consolidation_scan_limit` memories per agent."""
        per_agent: Counter[Optional[str]] = Counter()
        window = []
        for memory in sorted(memories, key=lambda m: m.created_at, reverse=True):
            if per_agent[memory.agent_id] < self._settings.consolidation_scan_limit:
                per_agent[memory.agent_id] += 1
                window.append(memory)
        return window

    async def _collect_embeddings(
        self,
        memories: list[Memory],
        deadline: Optional[Deadline],
    ) -> dict[str, list[float]]:
        """Stored vectors where available, regenerated otherwise."""

        async def _embedding_for(memory: Memory) -> list[float]:
            document = await self._soft(
                "vector",
                "get_by_store_id",
                self._vector.get_by_store_id(make_store_id(memory.memory_id), memory.content_type),
                deadline,
                memory_id=memory.memory_id,
            )
            if document is not None and len(document.embedding) == self._embeddings.dimension:
                return document.embedding
            generated = await run_with_deadline(
                self._embeddings.generate(memory.content, memory.content_type, self._language(memory)),
                deadline,
                "embeddings.generate",
            )
            return generated.embedding

        vectors = await asyncio.gather(*(_embedding_for(memory) for memory in memories))
        return {memory.memory_id: vector for memory, vector in zip(memories, vectors)}

    async def _merge_pair(
        self,
        survivor: Memory,
        absorbed: Memory,
        similarity: float,
        embeddings: dict[str, list[float]],
        deadline: Optional[Deadline],
    ) -> int:
        """Fold `absorbed` into `survivor`; returns the number of re-pointed edges."""
        survivor_vector = embeddings[survivor.memory_id]
        absorbed_vector = embeddings[absorbed.memory_id]
        provenance = {
            "merged_id": absorbed.memory_id,
            "similarity": round(similarity, 6),
            "weight": round(
                self._embeddings.relationship_weight(
                    survivor_vector, absorbed_vector, RelationshipType.SIMILAR_TO.value
                ),
                6,
            ),
            "merged_at": utcnow().isoformat(),
        }
        updates = merge_updates(survivor, absorbed, provenance)

        async def _update(store: MetadataStore) -> Optional[Memory]:
            return await store.update_memory(survivor.memory_id, updates)

        updated = await self._call(
            "metadata",
            "update_memory",
            self._metadata.read_with_fallback(_update, "update_memory"),
            deadline,
        )
        if updated is None:
            raise MemoryNotFoundError(survivor.memory_id)

        if updated.content != survivor.content:
            regenerated = await run_with_deadline(
                self._embeddings.generate(updated.content, updated.content_type, self._language(updated)),
                deadline,
                "embeddings.generate",
            )
            survivor_vector = regenerated.embedding
        await self._soft(
            "vector",
            "update_memory",
            self._vector.update_memory(updated, survivor_vector),
            deadline,
            memory_id=updated.memory_id,
        )

        repointed = await self._soft(
            "graph",
            "repoint_edges",
            self._graph.repoint_edges(absorbed.memory_id, survivor.memory_id),
            deadline,
            default=0,
            memory_id=absorbed.memory_id,
        )

        await self.delete_memory(absorbed.memory_id, deadline)
        logger.info(
            "memory_pair_consolidated",
            survivor_id=survivor.memory_id,
            merged_id=absorbed.memory_id,
            similarity=similarity,
            connections_updated=repointed,
        )
        return repointed

    @staticmethod
    def _language(memory: Memory) -> Optional[str]:
        if isinstance(memory.features, CodeFeatures):
            return memory.features.language
        return None

    # =========================================================================
    # Reporting
    # =========================================================================

    async def get_statistics(
        self,
        agent_id: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> MemoryStatistics:
        """Counts by type, content type, agent and project, plus recent memories and clusters."""
        deadline = self._deadline(deadline)
        memories = await self._list_memories(deadline)
        if agent_id is not None:
            memories = [m for m in memories if m.agent_id == agent_id]

        by_type = Counter(m.type.value for m in memories)
        by_content_type = Counter(m.content_type.value for m in memories)
        by_agent = Counter(m.agent_id for m in memories if m.agent_id)
        by_project = Counter(m.project for m in memories if m.project)

        recent = sorted(memories, key=lambda m: m.created_at, reverse=True)
        clusters = await self._soft(
            "graph",
            "concept_clusters",
            self._graph.concept_clusters(agent_id),
            deadline,
            default=[],
        )

        return MemoryStatistics(
            total_memories=len(memories),
            text_memories=by_content_type.get(ContentType.TEXT.value, 0),
            code_memories=by_content_type.get(ContentType.CODE.value, 0),
            by_type=dict(by_type),
            by_content_type=dict(by_content_type),
            by_agent=dict(by_agent),
            by_project=dict(by_project),
            recent_memories=recent[: self._settings.recent_memories_limit],
            concept_clusters=clusters,
        )

    async def list_agents(
        self,
        project: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> list[AgentSummary]:
        """Agents with stored memories, most recently active first."""
        memories = await self._list_memories(self._deadline(deadline))
        if project is not None:
            memories = [m for m in memories if m.project == project]

        grouped: dict[str, list[Memory]] = {}
        for memory in memories:
            if memory.agent_id:
                grouped.setdefault(memory.agent_id, []).append(memory)

        agents = []
        for agent_id, agent_memories in grouped.items():
            last_activity = max(m.created_at for m in agent_memories)
            agents.append(
                AgentSummary(
                    agent_id=agent_id,
                    projects=sorted({m.project for m in agent_memories if m.project}),
                    memory_count=len(agent_memories),
                    last_activity=last_activity,
                    status=AgentSummary.status_for(last_activity),
                )
            )
        agents.sort(key=lambda a: a.last_activity, reverse=True)
        return agents

    async def list_projects(
        self,
        include_stats: bool = True,
        deadline: Optional[Deadline] = None,
    ) -> list[ProjectSummary]:
        """Projects with stored memories, by name."""
        memories = await self._list_memories(self._deadline(deadline))

        grouped: dict[str, list[Memory]] = {}
        for memory in memories:
            grouped.setdefault(memory.project or self._settings.default_project, []).append(memory)

        projects = []
        for project in sorted(grouped):
            if not include_stats:
                projects.append(ProjectSummary(project=project))
                continue
            project_memories = grouped[project]
            projects.append(
                ProjectSummary(
                    project=project,
                    memory_count=len(project_memories),
                    agent_count=len({m.agent_id for m in project_memories if m.agent_id}),
                    first_memory=min(m.created_at for m in project_memories),
                    last_activity=max(m.created_at for m in project_memories),
                )
            )
        return projects

    async def health_check(self) -> dict[str, Any]:
        """Health of every backing store."""
        storage = await self._metadata.get_storage_health()
        vector_healthy, graph_healthy = await asyncio.gather(
            self._soft("vector", "health_check", self._vector.health_check(), None, default=False),
            self._soft("graph", "health_check", self._graph.health_check(), None, default=False),
        )
        return {
            "metadata": storage,
            "vector_healthy": bool(vector_healthy),
            "graph_healthy": bool(graph_healthy),
        }
