"""
Pytest Configuration and Shared Fixtures.

This module provides common fixtures for all tests:

- settings: Local-mode settings isolated from the environment
- embeddings: Hash-only embedding generator (no model tiers)
- local_store: JSON metadata store in a temporary directory
- selector: Fallback-only storage strategy selector
- flaky_primary: Local store that fails on demand, used as a primary
- vector_store / graph_store: In-process adapters
- orchestrator: MemoryOrchestrator wired over all of the above
"""

import pytest
import pytest_asyncio

from memweave.config.settings import Settings
from memweave.core.circuit_breaker import reset_all_circuit_breakers
from memweave.knowledge.embeddings import EmbeddingGenerator
from memweave.knowledge.memory_graph_store import InMemoryGraphStore
from memweave.knowledge.memory_vector_store import InMemoryVectorStore
from memweave.memory.defaults import StaticDefaultResolver
from memweave.memory.orchestrator import MemoryOrchestrator
from memweave.models.schemas import Memory
from memweave.storage.local_store import LocalMetadataStore
from memweave.storage.strategy import StorageStrategySelector


@pytest.fixture(autouse=True)
def reset_breakers():
    """Circuit breakers are process-global; start every test closed."""
    reset_all_circuit_breakers()
    yield
    reset_all_circuit_breakers()


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Return local-mode settings that ignore .env and model tiers."""
    return Settings(
        _env_file=None,
        memory_mode="local",
        local_storage_dir=tmp_path / "memory-db",
        remote_embeddings_enabled=False,
        local_embeddings_enabled=False,
        default_resolver="static",
        default_project="common",
        storage_health_check_interval=0,
        operation_timeout_seconds=None,
    )


@pytest.fixture
def embeddings() -> EmbeddingGenerator:
    """Embedding generator that always uses the hash tier."""
    return EmbeddingGenerator(dimension=384)


@pytest.fixture
def local_store(tmp_path) -> LocalMetadataStore:
    return LocalMetadataStore(tmp_path / "memory-db")


class FlakyStore(LocalMetadataStore):
    """Local store whose memory reads, writes and health check fail while unhealthy."""

    name = "flaky"

    def __init__(self, storage_dir):
        super().__init__(storage_dir)
        self.healthy = True
        self.health_checks = 0

    async def health_check(self) -> bool:
        self.health_checks += 1
        return self.healthy

    async def put_memory(self, memory: Memory) -> None:
        if not self.healthy:
            raise ConnectionError("primary down")
        await super().put_memory(memory)

    async def get_memory(self, memory_id, track_access=True):
        if not self.healthy:
            raise ConnectionError("primary down")
        return await super().get_memory(memory_id, track_access)


@pytest.fixture
def flaky_primary(tmp_path) -> FlakyStore:
    return FlakyStore(tmp_path / "primary")


@pytest_asyncio.fixture
async def selector(local_store) -> StorageStrategySelector:
    selector = StorageStrategySelector(primary=None, fallback=local_store, health_check_interval=0)
    await selector.initialize()
    return selector


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture
def graph_store() -> InMemoryGraphStore:
    return InMemoryGraphStore()


@pytest.fixture
def resolver() -> StaticDefaultResolver:
    return StaticDefaultResolver(agent_id="test-agent", project="test-project")


@pytest.fixture
def orchestrator(
    selector, vector_store, graph_store, embeddings, resolver, settings
) -> MemoryOrchestrator:
    return MemoryOrchestrator(
        metadata=selector,
        vector_store=vector_store,
        graph_store=graph_store,
        embeddings=embeddings,
        resolver=resolver,
        settings=settings,
    )
