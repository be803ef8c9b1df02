"""
Dependency Injection Container for memweave.

Provides centralized management of the engine's dependencies with lazy
initialization and lifecycle management.

Local mode wires the JSON metadata store with in-process vector and graph
stores. Server mode wires Redis (primary) with the JSON store as fallback,
Pinecone and Neo4j.

Usage:
    # At application startup
    container = DependencyContainer()
    await container.initialize()

    result = await container.orchestrator.store_memory(request)

    # At shutdown
    await container.shutdown()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from memweave.config.settings import Settings, get_settings
from memweave.core.exceptions import ConfigurationError, InitializationError
from memweave.core.logging import configure_logging

if TYPE_CHECKING:
    from memweave.knowledge.embeddings import EmbeddingGenerator
    from memweave.knowledge.graph_store import GraphStore
    from memweave.knowledge.neo4j_client import Neo4jClient
    from memweave.knowledge.vector_store import VectorStore
    from memweave.memory.defaults import DefaultResolver
    from memweave.memory.orchestrator import MemoryOrchestrator
    from memweave.memory.tools import MemoryTools
    from memweave.storage.local_store import LocalMetadataStore
    from memweave.storage.redis_store import RedisMetadataStore
    from memweave.storage.strategy import StorageStrategySelector

logger = structlog.get_logger(__name__)


class DependencyContainer:
    """
    Central container for all engine dependencies.

    Services are created on first access and cached.

    Example:
        container = DependencyContainer(settings)
        await container.initialize()  # connect stores, pick storage strategy

        tools = container.tools

        await container.shutdown()
    """

    def __init__(self, settings: Settings | None = None):
        """
        Initialize the container.

        Args:
            settings: Application settings. Defaults to get_settings().
        """
        self._settings = settings or get_settings()
        self._embeddings: EmbeddingGenerator | None = None
        self._local_store: LocalMetadataStore | None = None
        self._redis_store: RedisMetadataStore | None = None
        self._selector: StorageStrategySelector | None = None
        self._vector_store: VectorStore | None = None
        self._neo4j: Neo4jClient | None = None
        self._graph_store: GraphStore | None = None
        self._resolver: DefaultResolver | None = None
        self._orchestrator: MemoryOrchestrator | None = None
        self._tools: MemoryTools | None = None
        self._initialized = False

        logger.info("dependency_container_created", memory_mode=self._settings.memory_mode)

    @property
    def settings(self) -> Settings:
        """Get application settings."""
        return self._settings

    @property
    def embeddings(self) -> "EmbeddingGenerator":
        """Get the embedding generator (lazy initialization)."""
        if self._embeddings is None:
            from memweave.knowledge.embeddings import EmbeddingGenerator

            self._embeddings = EmbeddingGenerator.from_settings(self._settings)
        return self._embeddings

    @property
    def local_store(self) -> "LocalMetadataStore":
        if self._local_store is None:
            from memweave.storage.local_store import LocalMetadataStore

            self._local_store = LocalMetadataStore(self._settings.local_storage_dir)
        return self._local_store

    @property
    def redis_store(self) -> "RedisMetadataStore | None":
        """Networked metadata store, or None when not configured."""
        if self._redis_store is None and self._uses_redis:
            from memweave.storage.redis_store import RedisMetadataStore

            self._redis_store = RedisMetadataStore(
                redis_url=self._settings.redis_url,
                key_prefix=self._settings.redis_key_prefix,
            )
        return self._redis_store

    @property
    def _uses_redis(self) -> bool:
        return (
            self._settings.is_server_mode
            and bool(self._settings.redis_url)
            and not self._settings.use_local_storage
        )

    @property
    def storage(self) -> "StorageStrategySelector":
        """Get the metadata storage strategy selector (lazy initialization)."""
        if self._selector is None:
            from memweave.storage.strategy import StorageStrategySelector

            self._selector = StorageStrategySelector(
                primary=self.redis_store,
                fallback=self.local_store,
                health_check_interval=self._settings.storage_health_check_interval,
            )
        return self._selector

    @property
    def neo4j(self) -> "Neo4jClient":
        """
        Get Neo4j client (lazy initialization).

        Raises:
            InitializationError: If Neo4j client cannot be created.
        """
        if self._neo4j is None:
            try:
                from memweave.knowledge.neo4j_client import Neo4jClient

                self._neo4j = Neo4jClient(
                    uri=self._settings.neo4j_uri,
                    user=self._settings.neo4j_user,
                    password=self._settings.neo4j_password.get_secret_value(),
                    database=self._settings.neo4j_database,
                )
                logger.info("neo4j_client_created")
            except Exception as e:
                logger.error("neo4j_client_creation_failed", error=str(e))
                raise InitializationError(
                    "Neo4jClient",
                    f"Failed to create Neo4j client: {e}",
                    {"uri": self._settings.neo4j_uri},
                )
        return self._neo4j

    @property
    def vector_store(self) -> "VectorStore":
        """
        Get the vector store (lazy initialization).

        Raises:
            InitializationError: If the Pinecone store cannot be created.
        """
        if self._vector_store is None:
            if not self._settings.is_server_mode:
                from memweave.knowledge.memory_vector_store import InMemoryVectorStore

                self._vector_store = InMemoryVectorStore(keyword_boost=self._settings.keyword_boost)
                return self._vector_store

            try:
                from memweave.knowledge.pinecone_store import PineconeVectorStore

                self._vector_store = PineconeVectorStore(
                    api_key=self._settings.pinecone_api_key.get_secret_value(),
                    index_name=self._settings.pinecone_index_name,
                    dimension=self._settings.embedding_dimension,
                    keyword_boost=self._settings.keyword_boost,
                    cloud=self._settings.pinecone_cloud,
                    region=self._settings.pinecone_region,
                )
                logger.info("pinecone_store_created")
            except Exception as e:
                logger.error("pinecone_store_creation_failed", error=str(e))
                raise InitializationError(
                    "PineconeVectorStore",
                    f"Failed to create Pinecone store: {e}",
                    {"index": self._settings.pinecone_index_name},
                )
        return self._vector_store

    @property
    def graph_store(self) -> "GraphStore":
        """Get the graph store (lazy initialization)."""
        if self._graph_store is None:
            if self._settings.is_server_mode:
                from memweave.knowledge.neo4j_store import Neo4jGraphStore

                self._graph_store = Neo4jGraphStore(self.neo4j)
            else:
                from memweave.knowledge.memory_graph_store import InMemoryGraphStore

                self._graph_store = InMemoryGraphStore()
        return self._graph_store

    @property
    def resolver(self) -> "DefaultResolver":
        if self._resolver is None:
            from memweave.memory.defaults import GitDefaultResolver, StaticDefaultResolver

            if self._settings.default_resolver == "static":
                self._resolver = StaticDefaultResolver(
                    agent_id=self._settings.default_agent_id or "default-agent",
                    project=self._settings.default_project,
                )
            else:
                self._resolver = GitDefaultResolver(
                    default_project=self._settings.default_project,
                    ttl_seconds=self._settings.defaults_cache_ttl_seconds,
                )
        return self._resolver

    @property
    def orchestrator(self) -> "MemoryOrchestrator":
        if self._orchestrator is None:
            from memweave.memory.orchestrator import MemoryOrchestrator

            self._orchestrator = MemoryOrchestrator(
                metadata=self.storage,
                vector_store=self.vector_store,
                graph_store=self.graph_store,
                embeddings=self.embeddings,
                resolver=self.resolver,
                settings=self._settings,
            )
        return self._orchestrator

    @property
    def tools(self) -> "MemoryTools":
        if self._tools is None:
            from memweave.memory.tools import MemoryTools

            self._tools = MemoryTools(self.orchestrator)
        return self._tools

    async def initialize(self) -> None:
        """
        Connect the configured backends and choose the storage strategy.

        A Redis outage at startup is not fatal: the selector starts on the
        local fallback and promotes once Redis is healthy.

        Raises:
            InitializationError: If Neo4j or Pinecone fail to initialize.
        """
        if self._initialized:
            logger.warning("container_already_initialized")
            return

        logger.info("container_initializing", memory_mode=self._settings.memory_mode)

        try:
            if self._settings.is_server_mode:
                await self.neo4j.connect()
                logger.info("neo4j_connected")

                self.vector_store.connect()
                self.vector_store.ensure_index()
                logger.info("pinecone_connected")

            if self.redis_store is not None:
                try:
                    await self.redis_store.connect()
                except Exception as e:
                    logger.warning("redis_unavailable_at_startup", error=str(e))

            await self.storage.initialize()
            if self.redis_store is not None:
                self.storage.start_health_monitor()

            self._initialized = True
            logger.info(
                "container_initialized",
                storage_strategy=self.storage.current_strategy.value,
            )

        except (InitializationError, ConfigurationError):
            raise
        except Exception as e:
            logger.error(
                "container_initialization_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise InitializationError(
                "DependencyContainer",
                f"Failed to initialize dependencies: {e}",
            )

    async def shutdown(self) -> None:
        """Shutdown all services gracefully."""
        logger.info("container_shutting_down")

        if self._selector is not None:
            await self._selector.stop_health_monitor()

        if self._redis_store is not None:
            try:
                await self._redis_store.disconnect()
            except Exception as e:
                logger.error("redis_close_error", error=str(e))

        if self._neo4j is not None:
            try:
                await self._neo4j.close()
                logger.info("neo4j_closed")
            except Exception as e:
                logger.error("neo4j_close_error", error=str(e))

        self._initialized = False
        logger.info("container_shutdown_complete")

    @property
    def is_initialized(self) -> bool:
        """Check if container has been initialized."""
        return self._initialized


# Global container instance for convenience
# Prefer passing container explicitly via dependency injection
_container: DependencyContainer | None = None


def get_container() -> DependencyContainer:
    """
    Get the global container instance.

    Creates one if it doesn't exist. Prefer passing container
    explicitly for better testability.
    """
    global _container
    if _container is None:
        _container = DependencyContainer()
    return _container


async def initialize_container() -> DependencyContainer:
    """Configure logging, then initialize and return the global container."""
    container = get_container()
    configure_logging(container.settings.log_level)
    await container.initialize()
    return container


async def shutdown_container() -> None:
    """Shutdown the global container."""
    global _container
    if _container is not None:
        await _container.shutdown()
        _container = None
