"""In-process vector store for local mode and tests."""

from __future__ import annotations

import asyncio
from typing import Optional

import structlog

from memweave.knowledge.embeddings import cosine_similarity
from memweave.knowledge.vector_store import (
    VectorDocument,
    VectorHit,
    VectorQuery,
    index_for,
    make_store_id,
    matches_filters,
    rank_hits,
)
from memweave.models.schemas import ContentType, Memory

logger = structlog.get_logger(__name__)


class InMemoryVectorStore:
    """
    Brute-force cosine search over per-index dictionaries.

    WARNING: Does not persist across restarts.
    """

    def __init__(self, keyword_boost: float = 0.3) -> None:
        self._keyword_boost = keyword_boost
        self._indexes: dict[str, dict[str, VectorDocument]] = {
            index_for(ct): {} for ct in ContentType
        }
        self._lock = asyncio.Lock()

    async def index_memory(self, memory: Memory, embedding: list[float]) -> str:
        store_id = make_store_id(memory.memory_id)
        snapshot = memory.model_copy(deep=True)
        async with self._lock:
            self._indexes[index_for(memory.content_type)][store_id] = VectorDocument(
                store_id=store_id,
                memory=snapshot,
                embedding=list(embedding),
            )
        logger.debug("vector_indexed", store_id=store_id, index=index_for(memory.content_type))
        return store_id

    async def search(self, query: VectorQuery, embedding: list[float]) -> list[VectorHit]:
        candidates: list[tuple[Memory, float]] = []
        async with self._lock:
            for content_type in query.content_types:
                for document in self._indexes[index_for(content_type)].values():
                    if not matches_filters(document.memory, query):
                        continue
                    similarity = cosine_similarity(embedding, document.embedding)
                    candidates.append((document.memory.model_copy(), similarity))

        return rank_hits(candidates, query, self._keyword_boost)

    async def get_by_store_id(
        self, store_id: str, content_type: ContentType
    ) -> Optional[VectorDocument]:
        async with self._lock:
            return self._indexes[index_for(content_type)].get(store_id)

    async def update_memory(self, memory: Memory, embedding: list[float]) -> None:
        await self.index_memory(memory, embedding)

    async def delete_memory(self, memory_id: str, content_type: ContentType) -> bool:
        async with self._lock:
            removed = self._indexes[index_for(content_type)].pop(make_store_id(memory_id), None)
        return removed is not None

    async def health_check(self) -> bool:
        return True

    def count(self) -> int:
        return sum(len(index) for index in self._indexes.values())
