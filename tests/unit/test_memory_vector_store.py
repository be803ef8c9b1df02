"""Unit tests for the in-process vector store and shared ranking helpers."""

import pytest

from memweave.knowledge.analyzers import analyze_code, analyze_text, keyword_score, stem
from memweave.knowledge.memory_vector_store import InMemoryVectorStore
from memweave.knowledge.vector_store import VectorQuery, index_for, make_store_id
from memweave.models.schemas import ContentType, Memory, MemoryType


def make_memory(content: str, content_type=ContentType.TEXT, **overrides) -> Memory:
    return Memory(
        type=overrides.pop("type", MemoryType.SEMANTIC),
        content_type=content_type,
        content=content,
        **overrides,
    )


class TestIndexing:
    """Test per-content-type indexes."""

    @pytest.mark.asyncio
    async def test_index_returns_store_id(self, vector_store):
        memory = make_memory("hello")

        store_id = await vector_store.index_memory(memory, [1.0, 0.0])

        assert store_id == make_store_id(memory.memory_id)
        document = await vector_store.get_by_store_id(store_id, ContentType.TEXT)
        assert document.embedding == [1.0, 0.0]
        assert await vector_store.get_by_store_id(store_id, ContentType.CODE) is None

    @pytest.mark.asyncio
    async def test_delete(self, vector_store):
        memory = make_memory("hello")
        await vector_store.index_memory(memory, [1.0, 0.0])

        assert await vector_store.delete_memory(memory.memory_id, ContentType.TEXT) is True
        assert await vector_store.delete_memory(memory.memory_id, ContentType.TEXT) is False
        assert vector_store.count() == 0

    def test_index_names(self):
        assert index_for(ContentType.TEXT) == "memory-text"
        assert index_for(ContentType.CODE) == "memory-code"


class TestSearch:
    """Test kNN ranking, filters and thresholds."""

    @pytest.mark.asyncio
    async def test_ranks_by_similarity(self, vector_store):
        near = make_memory("near")
        far = make_memory("far")
        await vector_store.index_memory(near, [1.0, 0.1])
        await vector_store.index_memory(far, [0.1, 1.0])

        hits = await vector_store.search(VectorQuery(limit=5), [1.0, 0.0])

        assert [hit.memory.memory_id for hit in hits] == [near.memory_id, far.memory_id]

    @pytest.mark.asyncio
    async def test_threshold_uses_raw_similarity(self, vector_store):
        memory = make_memory("deploy pipeline notes")
        await vector_store.index_memory(memory, [0.0, 1.0])

        hits = await vector_store.search(
            VectorQuery(query_text="deploy pipeline", threshold=0.5), [1.0, 0.0]
        )

        assert hits == []

    @pytest.mark.asyncio
    async def test_keyword_boost_breaks_ties(self):
        store = InMemoryVectorStore(keyword_boost=0.3)
        plain = make_memory("unrelated words")
        matching = make_memory("the deploy pipeline failed")
        await store.index_memory(plain, [1.0, 0.0])
        await store.index_memory(matching, [1.0, 0.0])

        hits = await store.search(VectorQuery(query_text="deploy pipeline"), [1.0, 0.0])

        assert hits[0].memory.memory_id == matching.memory_id
        assert hits[0].score == pytest.approx(1.3)
        assert hits[0].similarity == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_filters(self, vector_store):
        mine = make_memory("a", agent_id="agent-1", project="p1", tags=["x"])
        other = make_memory("b", agent_id="agent-2", project="p1", tags=["y"])
        code = make_memory("def f(): pass", ContentType.CODE, agent_id="agent-1")
        for memory in (mine, other, code):
            await vector_store.index_memory(memory, [1.0, 0.0])

        by_agent = await vector_store.search(VectorQuery(agent_id="agent-1"), [1.0, 0.0])
        by_tag = await vector_store.search(VectorQuery(tags=["y", "z"]), [1.0, 0.0])
        by_type = await vector_store.search(
            VectorQuery(content_type=ContentType.CODE), [1.0, 0.0]
        )

        assert {h.memory.memory_id for h in by_agent} == {mine.memory_id, code.memory_id}
        assert [h.memory.memory_id for h in by_tag] == [other.memory_id]
        assert [h.memory.memory_id for h in by_type] == [code.memory_id]

    @pytest.mark.asyncio
    async def test_limit(self, vector_store):
        for i in range(5):
            await vector_store.index_memory(make_memory(f"m{i}"), [1.0, float(i)])

        hits = await vector_store.search(VectorQuery(limit=2), [1.0, 0.0])

        assert len(hits) == 2


class TestAnalyzers:
    """Test keyword analyzers."""

    def test_text_analyzer_drops_stopwords_and_stems(self):
        assert analyze_text("The deployments are running") == ["deploy", "runn"]

    def test_code_analyzer_keeps_identifiers(self):
        assert analyze_code("def parse_config(Path)") == ["def", "parse_config(path)"]

    def test_stem_keeps_short_words(self):
        assert stem("bus") == "bus"
        assert stem("libraries") == "library"

    def test_keyword_score(self):
        assert keyword_score("deploy pipeline", "pipeline broke", ContentType.TEXT) == 0.5
        assert keyword_score("the a", "anything", ContentType.TEXT) == 0.0
