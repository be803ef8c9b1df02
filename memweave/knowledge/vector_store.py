"""
Vector Search Store interface.

One logical index per content type. Search combines kNN similarity with an
optional keyword boost, exact-match filters and a post-retrieval
similarity threshold. Adapters share the scoring helpers below so that
Pinecone and the in-process store rank identically.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Protocol

from memweave.knowledge.analyzers import keyword_score
from memweave.models.schemas import ContentType, Memory, MemoryType

INDEX_NAMES: dict[ContentType, str] = {
    ContentType.TEXT: "memory-text",
    ContentType.CODE: "memory-code",
}


def index_for(content_type: ContentType) -> str:
    return INDEX_NAMES[ContentType(content_type)]


def make_store_id(memory_id: str) -> str:
    return f"vec_{memory_id}"


@dataclass
class VectorQuery:
    """Search parameters. Unset filters match everything."""

    query_text: str = ""
    limit: int = 10
    content_type: Optional[ContentType] = None
    type: Optional[MemoryType] = None
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    project: Optional[str] = None
    tags: list[str] = field(default_factory=list)
    threshold: Optional[float] = None

    @property
    def content_types(self) -> list[ContentType]:
        if self.content_type is not None:
            return [ContentType(self.content_type)]
        return list(INDEX_NAMES)


@dataclass
class VectorHit:
    """A ranked search result."""

    memory: Memory
    score: float
    similarity: float


@dataclass
class VectorDocument:
    """A stored vector with the memory snapshot indexed alongside it."""

    store_id: str
    memory: Memory
    embedding: list[float]


class VectorStore(Protocol):
    """Capability interface consumed by the orchestrator."""

    async def index_memory(self, memory: Memory, embedding: list[float]) -> str: ...

    async def search(self, query: VectorQuery, embedding: list[float]) -> list[VectorHit]: ...

    async def get_by_store_id(
        self, store_id: str, content_type: ContentType
    ) -> Optional[VectorDocument]: ...

    async def update_memory(self, memory: Memory, embedding: list[float]) -> None: ...

    async def delete_memory(self, memory_id: str, content_type: ContentType) -> bool: ...

    async def health_check(self) -> bool: ...


def matches_filters(memory: Memory, query: VectorQuery) -> bool:
    """Exact-match filters; tags match when any requested tag is present."""
    if query.type is not None and memory.type != MemoryType(query.type):
        return False
    if query.content_type is not None and memory.content_type != ContentType(query.content_type):
        return False
    if query.agent_id is not None and memory.agent_id != query.agent_id:
        return False
    if query.session_id is not None and memory.session_id != query.session_id:
        return False
    if query.project is not None and memory.project != query.project:
        return False
    if query.tags and not set(query.tags) & set(memory.tags):
        return False
    return True


def rank_hits(
    candidates: list[tuple[Memory, float]],
    query: VectorQuery,
    keyword_boost: float,
) -> list[VectorHit]:
    """
    Apply keyword boost and threshold, then sort highest first.

    The threshold is compared against the raw vector similarity, not the
    boosted score.
    """
    hits = []
    for memory, similarity in candidates:
        if query.threshold is not None and similarity < query.threshold:
            continue
        score = similarity
        if query.query_text and keyword_boost:
            score += keyword_boost * keyword_score(query.query_text, memory.content, memory.content_type)
        hits.append(VectorHit(memory=memory, score=score, similarity=similarity))

    hits.sort(key=lambda hit: hit.score, reverse=True)
    return hits[: query.limit]
