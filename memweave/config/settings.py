"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Every field has a local-development default so the engine can run without any
external service configured.

Server Mode:
    When memory_mode="server", additional validations apply:
    - neo4j_uri and neo4j_password must be set
    - pinecone_api_key must be set
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Deployment Mode
    # -------------------------------------------------------------------------
    memory_mode: Literal["local", "server"] = Field(
        default="local",
        description="local: JSON metadata plus in-process vector/graph stores. "
        "server: Redis, Pinecone and Neo4j.",
    )

    # -------------------------------------------------------------------------
    # Redis (Primary Metadata Store)
    # -------------------------------------------------------------------------
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    redis_key_prefix: str = Field(
        default="memweave",
        description="Prefix for every metadata key written to Redis",
    )

    # -------------------------------------------------------------------------
    # Local Fallback Metadata Store
    # -------------------------------------------------------------------------
    local_storage_dir: Path = Field(
        default=Path(".local-memory-db"),
        description="Directory holding the JSON fallback tables",
    )
    use_local_storage: bool = Field(
        default=False,
        description="Skip the networked metadata store and use local JSON files only",
    )
    storage_health_check_interval: float = Field(
        default=30.0,
        description="Minimum seconds between metadata store health re-checks",
    )

    # -------------------------------------------------------------------------
    # Neo4j (Graph Relationship Store)
    # -------------------------------------------------------------------------
    neo4j_uri: str | None = Field(default=None, description="Neo4j connection URI (bolt://)")
    neo4j_user: str = Field(default="neo4j", description="Neo4j username")
    neo4j_password: SecretStr | None = Field(default=None, description="Neo4j password")
    neo4j_database: str = Field(default="neo4j", description="Neo4j database name")

    # -------------------------------------------------------------------------
    # Pinecone (Vector Search Store)
    # -------------------------------------------------------------------------
    pinecone_api_key: SecretStr | None = Field(default=None, description="Pinecone API key")
    pinecone_index_name: str = Field(
        default="memweave-memories",
        description="Pinecone index name",
    )
    pinecone_cloud: str = Field(default="aws", description="Serverless cloud provider")
    pinecone_region: str = Field(default="us-east-1", description="Serverless region")

    # -------------------------------------------------------------------------
    # Embeddings
    # -------------------------------------------------------------------------
    embedding_dimension: int = Field(
        default=384,
        description="Deployment-wide embedding dimension shared by every tier",
    )
    embedding_max_chars: int = Field(
        default=8000,
        description="Content is truncated to this many characters before embedding",
    )
    remote_embeddings_enabled: bool = Field(
        default=False,
        description="Enable the hosted embedding tier",
    )
    remote_embedding_provider: Literal["cohere", "openai"] = Field(
        default="cohere",
        description="Hosted embedding provider",
    )
    cohere_api_key: SecretStr | None = Field(default=None, description="Cohere API key")
    cohere_embedding_model: str = Field(
        default="embed-english-light-v3.0",
        description="Cohere embedding model (embed-english-light-v3.0 is 384-d)",
    )
    openai_api_key: SecretStr | None = Field(default=None, description="OpenAI API key")
    openai_embedding_model: str = Field(
        default="text-embedding-3-small",
        description="OpenAI embedding model, truncated to embedding_dimension",
    )
    local_embeddings_enabled: bool = Field(
        default=True,
        description="Enable the on-device sentence-transformers tier",
    )
    local_text_embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L6-v2",
        description="Local model for text content",
    )
    local_code_embedding_model: str = Field(
        default="sentence-transformers/all-MiniLM-L12-v2",
        description="Local model for code content",
    )

    # -------------------------------------------------------------------------
    # Retrieval & Consolidation
    # -------------------------------------------------------------------------
    default_similarity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_memories_per_query: int = Field(default=50, ge=1)
    keyword_boost: float = Field(
        default=0.3,
        description="Weight of the keyword match component in vector search scores",
    )
    related_memory_depth: int = Field(
        default=2,
        ge=1,
        description="Graph traversal depth used for related-memory expansion",
    )
    recent_memories_limit: int = Field(default=10, ge=1)
    consolidation_threshold: float = Field(default=0.9, ge=0.0, le=1.0)
    max_consolidations: int = Field(default=50, ge=1)
    consolidation_scan_limit: int = Field(
        default=500,
        description="Maximum memories per agent compared pairwise in one run",
    )

    # -------------------------------------------------------------------------
    # Sessions & Working Memory
    # -------------------------------------------------------------------------
    session_window_size: int = Field(
        default=10,
        description="Number of recent memory ids kept per session",
    )
    working_memory_ttl_seconds: int = Field(
        default=3600,
        description="Lifetime of working memories",
    )

    # -------------------------------------------------------------------------
    # Default Identity
    # -------------------------------------------------------------------------
    default_resolver: Literal["git", "static"] = Field(
        default="git",
        description="How agent/project defaults are resolved",
    )
    default_agent_id: str | None = Field(default=None, description="Static default agent id")
    default_project: str = Field(default="common", description="Fallback project name")
    defaults_cache_ttl_seconds: float = Field(default=30.0)

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    operation_timeout_seconds: float | None = Field(
        default=None,
        description="Default deadline applied to orchestrator calls that pass none",
    )

    @property
    def is_server_mode(self) -> bool:
        """Check if running against networked backends."""
        return self.memory_mode == "server"

    @model_validator(mode="after")
    def validate_server_settings(self) -> "Settings":
        """Validate that server mode has the backends it needs."""
        if self.memory_mode == "server":
            errors = []

            if not self.neo4j_uri:
                errors.append("neo4j_uri must be set in server mode")
            if not self.neo4j_password:
                errors.append("neo4j_password must be set in server mode")
            if not self.pinecone_api_key:
                errors.append("pinecone_api_key must be set in server mode")

            if errors:
                raise ValueError(
                    f"Server configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()


# Convenience export for direct import
settings = get_settings()
