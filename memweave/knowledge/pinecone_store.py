"""
Pinecone Vector Search Store.

Memories live in a single serverless index with one namespace per content
type ("memory-text", "memory-code"). Pinecone handles kNN and exact-match
metadata filters; keyword boosting and the similarity threshold run over
an over-fetched candidate set using the shared analyzers.
"""

from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Callable, Optional, TypeVar

import structlog
from pinecone import Pinecone, ServerlessSpec

from memweave.config import settings
from memweave.core.circuit_breaker import get_circuit_breaker
from memweave.core.exceptions import ConfigurationError, KnowledgeStoreQueryError
from memweave.knowledge.vector_store import (
    VectorDocument,
    VectorHit,
    VectorQuery,
    index_for,
    make_store_id,
    rank_hits,
)
from memweave.models.schemas import ContentType, Memory

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Circuit breaker for Pinecone operations
_pinecone_breaker = get_circuit_breaker("pinecone", failure_threshold=5, recovery_timeout=60)

# Pinecone caps metadata at 40KB per vector
MAX_METADATA_CONTENT_CHARS = 20000


def memory_to_metadata(memory: Memory) -> dict[str, Any]:
    """Flatten a memory into Pinecone-compatible metadata (no nulls, string lists only)."""
    metadata: dict[str, Any] = {
        "memory_id": memory.memory_id,
        "content": memory.content[:MAX_METADATA_CONTENT_CHARS],
        "type": memory.type.value,
        "content_type": memory.content_type.value,
        "tags": list(memory.tags),
        "confidence": memory.confidence,
        "created_at": memory.created_at.isoformat(),
    }
    for key in ("agent_id", "session_id", "project"):
        value = getattr(memory, key)
        if value is not None:
            metadata[key] = value
    if memory.features is not None:
        metadata["features"] = memory.features.model_dump_json()
        language = getattr(memory.features, "language", None)
        if language:
            metadata["language"] = language
    return metadata


def metadata_to_memory(metadata: dict[str, Any]) -> Memory:
    data = {
        key: metadata.get(key)
        for key in (
            "memory_id", "content", "type", "content_type", "agent_id",
            "session_id", "project", "confidence", "created_at",
        )
        if metadata.get(key) is not None
    }
    data["tags"] = list(metadata.get("tags") or [])
    if metadata.get("features"):
        data["features"] = json.loads(metadata["features"])
    return Memory.model_validate(data)


def build_filter(query: VectorQuery) -> dict[str, Any] | None:
    """Translate query filters into Pinecone metadata filter syntax."""
    clauses: dict[str, Any] = {}
    if query.type is not None:
        clauses["type"] = {"$eq": getattr(query.type, "value", query.type)}
    for key in ("agent_id", "session_id", "project"):
        value = getattr(query, key)
        if value is not None:
            clauses[key] = {"$eq": value}
    if query.tags:
        clauses["tags"] = {"$in": list(query.tags)}
    return clauses or None


class PineconeVectorStore:
    """
    Pinecone-backed vector store.

    Usage:
        store = PineconeVectorStore()
        store.connect()
        store.ensure_index()

        store_id = await store.index_memory(memory, embedding)
        hits = await store.search(VectorQuery(query_text="retry logic"), query_embedding)
    """

    METRIC = "cosine"

    def __init__(
        self,
        api_key: str | None = None,
        index_name: str | None = None,
        dimension: int | None = None,
        keyword_boost: float | None = None,
        candidate_multiplier: int = 3,
        cloud: str | None = None,
        region: str | None = None,
    ) -> None:
        """
        Initialize the store.

        Args:
            api_key: Pinecone API key. Defaults to settings.pinecone_api_key.
            index_name: Index name. Defaults to settings.pinecone_index_name.
            dimension: Vector dimension. Defaults to settings.embedding_dimension.
            keyword_boost: Keyword score weight. Defaults to settings.keyword_boost.
            candidate_multiplier: Over-fetch factor before keyword re-scoring.
        """
        if api_key is None and settings.pinecone_api_key is not None:
            api_key = settings.pinecone_api_key.get_secret_value()
        self._api_key = api_key
        self._index_name = index_name or settings.pinecone_index_name
        self._dimension = dimension or settings.embedding_dimension
        self._keyword_boost = settings.keyword_boost if keyword_boost is None else keyword_boost
        self._candidate_multiplier = candidate_multiplier
        self._cloud = cloud or settings.pinecone_cloud
        self._region = region or settings.pinecone_region
        self._client: Pinecone | None = None
        self._index: Any = None

    def connect(self) -> None:
        """Initialize connection to Pinecone."""
        if self._client is not None:
            return

        self._client = Pinecone(api_key=self._api_key)
        logger.info("pinecone_client_initialized")

    @property
    def client(self) -> Pinecone:
        """Get the Pinecone client, raising if not connected."""
        if self._client is None:
            raise RuntimeError("Pinecone client not initialized. Call connect() first.")
        return self._client

    @property
    def index(self) -> Any:
        """Get the Pinecone index, raising if not connected."""
        if self._index is None:
            raise RuntimeError("Pinecone index not initialized. Call ensure_index() first.")
        return self._index

    def ensure_index(self, wait_for_ready: bool = True) -> None:
        """Create the index if it doesn't exist and connect to it."""
        existing_indexes = [idx.name for idx in self.client.list_indexes()]

        if self._index_name not in existing_indexes:
            logger.info(
                "pinecone_creating_index",
                index_name=self._index_name,
                dimension=self._dimension,
                metric=self.METRIC,
            )
            self.client.create_index(
                name=self._index_name,
                dimension=self._dimension,
                metric=self.METRIC,
                spec=ServerlessSpec(cloud=self._cloud, region=self._region),
            )
            if wait_for_ready:
                self._wait_for_index_ready()
            logger.info("pinecone_index_created", index_name=self._index_name)
        else:
            dimension = self.client.describe_index(self._index_name).dimension
            if dimension != self._dimension:
                raise ConfigurationError(
                    f"Index {self._index_name} has dimension {dimension}, "
                    f"embeddings produce {self._dimension}",
                    config_key="embedding_dimension",
                )
            logger.info("pinecone_index_exists", index_name=self._index_name)

        self._index = self.client.Index(self._index_name)
        logger.info("pinecone_index_connected", index_name=self._index_name)

    def _wait_for_index_ready(self, timeout: int = 300) -> None:
        start_time = time.time()
        while True:
            description = self.client.describe_index(self._index_name)
            if description.status.ready:
                return

            if time.time() - start_time > timeout:
                raise TimeoutError(f"Index {self._index_name} not ready after {timeout}s")

            time.sleep(5)
            logger.debug("pinecone_waiting_for_index", index_name=self._index_name)

    async def _call(self, operation: str, fn: Callable[[], T]) -> T:
        """Run a sync Pinecone call in the thread pool behind the circuit breaker."""
        loop = asyncio.get_event_loop()
        async with _pinecone_breaker.guard():
            try:
                return await loop.run_in_executor(None, fn)
            except Exception as e:
                logger.error(
                    "pinecone_operation_failed",
                    operation=operation,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise KnowledgeStoreQueryError(
                    f"Pinecone {operation} failed: {e}",
                    {"operation": operation, "original_error": str(e)},
                ) from e

    async def index_memory(self, memory: Memory, embedding: list[float]) -> str:
        store_id = make_store_id(memory.memory_id)
        namespace = index_for(memory.content_type)
        vector = {
            "id": store_id,
            "values": list(embedding),
            "metadata": memory_to_metadata(memory),
        }
        await self._call("upsert", lambda: self.index.upsert(vectors=[vector], namespace=namespace))
        logger.debug("pinecone_memory_indexed", store_id=store_id, namespace=namespace)
        return store_id

    async def search(self, query: VectorQuery, embedding: list[float]) -> list[VectorHit]:
        top_k = max(query.limit, 1) * self._candidate_multiplier
        metadata_filter = build_filter(query)

        candidates: list[tuple[Memory, float]] = []
        for content_type in query.content_types:
            namespace = index_for(content_type)
            result = await self._call(
                "query",
                lambda ns=namespace: self.index.query(
                    vector=embedding,
                    top_k=top_k,
                    filter=metadata_filter,
                    namespace=ns,
                    include_metadata=True,
                    include_values=False,
                ),
            )
            for match in result.matches:
                if not match.metadata:
                    continue
                candidates.append((metadata_to_memory(dict(match.metadata)), float(match.score)))

        hits = rank_hits(candidates, query, self._keyword_boost)
        logger.debug("pinecone_search_completed", candidates=len(candidates), hits=len(hits))
        return hits

    async def get_by_store_id(
        self, store_id: str, content_type: ContentType
    ) -> Optional[VectorDocument]:
        namespace = index_for(content_type)
        response = await self._call(
            "fetch",
            lambda: self.index.fetch(ids=[store_id], namespace=namespace),
        )
        vector = response.vectors.get(store_id)
        if vector is None or not vector.metadata:
            return None
        return VectorDocument(
            store_id=store_id,
            memory=metadata_to_memory(dict(vector.metadata)),
            embedding=list(vector.values),
        )

    async def update_memory(self, memory: Memory, embedding: list[float]) -> None:
        await self.index_memory(memory, embedding)

    async def delete_memory(self, memory_id: str, content_type: ContentType) -> bool:
        store_id = make_store_id(memory_id)
        namespace = index_for(content_type)
        await self._call("delete", lambda: self.index.delete(ids=[store_id], namespace=namespace))
        logger.info("pinecone_memory_deleted", store_id=store_id, namespace=namespace)
        return True

    async def health_check(self) -> bool:
        try:
            await self._call("describe_index_stats", lambda: self.index.describe_index_stats())
        except Exception as e:
            logger.warning("pinecone_health_check_failed", error=str(e))
            return False
        return True
