"""Pydantic models for memweave core entities and operation payloads."""

import time
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union
from uuid import uuid4

from pydantic import AfterValidator, BaseModel, Field, JsonValue, field_validator, model_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_memory_id() -> str:
    """Memory ids embed creation time: mem_<epoch_ms>_<8 hex>."""
    return f"mem_{int(time.time() * 1000)}_{uuid4().hex[:8]}"


def generate_connection_id() -> str:
    return f"conn_{uuid4().hex[:12]}"


class MemoryType(str, Enum):
    """Kinds of agent knowledge."""
    EPISODIC = "episodic"
    SEMANTIC = "semantic"
    PROCEDURAL = "procedural"
    WORKING = "working"


class ContentType(str, Enum):
    """Payload kind; selects index, analyzer and preprocessing."""
    TEXT = "text"
    CODE = "code"


class EntityType(str, Enum):
    """Graph node kinds that can terminate an edge."""
    MEMORY = "memory"
    AGENT = "agent"
    SESSION = "session"


class RelationshipType(str, Enum):
    """Common relationship labels. Edges accept any non-empty string."""
    RELATES_TO = "RELATES_TO"
    SIMILAR_TO = "SIMILAR_TO"
    REFERENCES = "REFERENCES"
    FOLLOWS = "FOLLOWS"
    IMPLEMENTS = "IMPLEMENTS"
    CONTRADICTS = "CONTRADICTS"
    CREATED = "CREATED"
    IN_SESSION = "IN_SESSION"
    OBSERVES = "OBSERVES"


JsonProperties = dict[str, JsonValue]


# =============================================================================
# Record Keys
# =============================================================================

MEMORY_SORT_KEY = "METADATA"
SESSION_SORT_KEY = "INFO"
AGENT_SORT_KEY = "PROFILE"


def memory_key(memory_id: str) -> tuple[str, str]:
    return (f"MEMORY#{memory_id}", MEMORY_SORT_KEY)


def session_key(session_id: str) -> tuple[str, str]:
    return (f"SESSION#{session_id}", SESSION_SORT_KEY)


def agent_key(agent_id: str) -> tuple[str, str]:
    return (f"AGENT#{agent_id}", AGENT_SORT_KEY)


# =============================================================================
# Content Features
# =============================================================================


class CodeFeatures(BaseModel):
    """Extension fields attached to code memories at creation."""

    kind: Literal["code"] = "code"
    language: str = "unknown"
    functions: list[str] = Field(default_factory=list)
    classes: list[str] = Field(default_factory=list)
    imports: list[str] = Field(default_factory=list)
    patterns: list[str] = Field(default_factory=list)
    complexity: Literal["low", "medium", "high"] = "low"


class TextFeatures(BaseModel):
    """Extension fields attached to text memories at creation."""

    kind: Literal["text"] = "text"
    topics: list[str] = Field(default_factory=list)
    sentiment: Literal["positive", "negative", "neutral"] = "neutral"
    entities: list[str] = Field(default_factory=list)


ContentFeatures = Annotated[Union[CodeFeatures, TextFeatures], Field(discriminator="kind")]


# =============================================================================
# Core Entities
# =============================================================================


class Memory(BaseModel):
    """A stored unit of agent knowledge."""

    memory_id: str = Field(default_factory=generate_memory_id)
    type: MemoryType
    content_type: ContentType
    content: str
    embedding: Optional[list[float]] = Field(default=None, exclude=True)

    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    project: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    context: JsonProperties = Field(default_factory=dict)
    features: Optional[ContentFeatures] = None

    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    access_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_accessed: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None

    vector_store_id: Optional[str] = None
    vector_index: Optional[str] = None
    graph_node_id: Optional[str] = None
    merged_from: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def dedupe_tags(cls, tags: list[str]) -> list[str]:
        seen: dict[str, None] = {}
        for tag in tags:
            tag = tag.strip()
            if tag:
                seen.setdefault(tag, None)
        return list(seen)

    @property
    def is_expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utcnow()

    def excerpt(self, length: int = 100) -> str:
        if len(self.content) <= length:
            return self.content
        return self.content[:length] + "..."

    def to_record(self) -> dict[str, Any]:
        """Serialize to a metadata record under its composite key."""
        pk, sk = memory_key(self.memory_id)
        record = self.model_dump(mode="json")
        record["PK"] = pk
        record["SK"] = sk
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Memory":
        data = {k: v for k, v in record.items() if k not in ("PK", "SK")}
        return cls.model_validate(data)


class Session(BaseModel):
    """Bounded ring of the most recent memory ids written in a session."""

    session_id: str
    agent_id: Optional[str] = None
    project: Optional[str] = None
    recent_memory_ids: list[str] = Field(default_factory=list)
    memory_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    def record_memory(self, memory_id: str, window: int = 10) -> None:
        self.recent_memory_ids = (self.recent_memory_ids + [memory_id])[-window:]
        self.memory_count += 1
        self.last_activity = utcnow()

    def to_record(self) -> dict[str, Any]:
        pk, sk = session_key(self.session_id)
        record = self.model_dump(mode="json")
        record["PK"] = pk
        record["SK"] = sk
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Session":
        return cls.model_validate({k: v for k, v in record.items() if k not in ("PK", "SK")})


class AgentProfile(BaseModel):
    """Per-agent activity summary."""

    agent_id: str
    projects: list[str] = Field(default_factory=list)
    memory_count: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)

    def record_memory(self, project: Optional[str]) -> None:
        if project and project not in self.projects:
            self.projects.append(project)
        self.memory_count += 1
        self.last_activity = utcnow()

    def to_record(self) -> dict[str, Any]:
        pk, sk = agent_key(self.agent_id)
        record = self.model_dump(mode="json")
        record["PK"] = pk
        record["SK"] = sk
        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "AgentProfile":
        return cls.model_validate({k: v for k, v in record.items() if k not in ("PK", "SK")})


class Connection(BaseModel):
    """Directed, typed edge between two graph nodes."""

    connection_id: str = Field(default_factory=generate_connection_id)
    from_id: str
    to_id: str
    relationship_type: str
    from_type: EntityType = EntityType.MEMORY
    to_type: EntityType = EntityType.MEMORY
    properties: JsonProperties = Field(default_factory=dict)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)
    created_at: datetime = Field(default_factory=utcnow)


class RelatedMemory(BaseModel):
    """A memory reached by graph traversal."""

    memory_id: str
    excerpt: str
    type: Optional[MemoryType] = None
    confidence: float
    distance: int


class ConceptCluster(BaseModel):
    """Memories sharing a tag."""

    tag: str
    memory_count: int
    sample_memory_ids: list[str]
    confidence: float


# =============================================================================
# Operation Payloads
# =============================================================================


def _require_relationship(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("relationship_type cannot be empty")
    return value


class StoreMemoryRequest(BaseModel):
    content: str = Field(..., min_length=1)
    type: Optional[MemoryType] = None
    content_type: Optional[ContentType] = None
    language: Optional[str] = None
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    project: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    metadata: JsonProperties = Field(default_factory=dict)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class StoreMemoryResult(BaseModel):
    memory_id: str
    success: bool
    type: MemoryType
    content_type: ContentType
    vector_store_id: Optional[str] = None
    graph_node_id: Optional[str] = None
    embedding_model: Optional[str] = None
    partial_failures: list[str] = Field(default_factory=list)


class RetrieveMemoriesRequest(BaseModel):
    memory_ids: Optional[list[str]] = None
    query: Optional[str] = None
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    project: Optional[str] = None
    type: Optional[MemoryType] = None
    content_type: Optional[ContentType] = None
    tags: Optional[list[str]] = None
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    limit: int = Field(default=10, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    include_related: bool = False


class MemorySearchResult(BaseModel):
    memory: Memory
    similarity_score: Optional[float] = None
    related: list[RelatedMemory] = Field(default_factory=list)
    related_memories: list[Memory] = Field(default_factory=list)


class RetrieveMemoriesResult(BaseModel):
    memories: list[MemorySearchResult]
    total_count: int
    has_more: bool
    strategy: Literal["ids", "query", "filter"]


class DeleteMemoryRequest(BaseModel):
    memory_id: str = Field(..., min_length=1)


class DeleteMemoryResult(BaseModel):
    memory_id: str
    success: bool
    metadata_deleted: bool
    vector_deleted: bool
    graph_deleted: bool


class AddConnectionRequest(BaseModel):
    from_memory_id: str = Field(..., min_length=1)
    to_memory_id: str = Field(..., min_length=1)
    relationship_type: Annotated[str, AfterValidator(_require_relationship)]
    properties: JsonProperties = Field(default_factory=dict)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    bidirectional: bool = False


class AddConnectionResult(BaseModel):
    success: bool
    connection_id: Optional[str] = None
    reverse_connection_id: Optional[str] = None
    bidirectional: bool = False
    edges_created: int = 0


class CreateObservationRequest(BaseModel):
    observation: str = Field(..., min_length=1)
    related_memory_ids: list[str] = Field(default_factory=list)
    agent_id: Optional[str] = None
    session_id: Optional[str] = None
    project: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class CreateObservationResult(BaseModel):
    observation_id: str
    success: bool
    connections_created: int
    failed_connections: list[str] = Field(default_factory=list)


class ConsolidateMemoriesRequest(BaseModel):
    agent_id: Optional[str] = None
    similarity_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_consolidations: Optional[int] = Field(default=None, ge=1)
    dry_run: bool = False


class ConsolidationPair(BaseModel):
    survivor_id: str
    merged_id: str
    similarity: float


class ConsolidateMemoriesResult(BaseModel):
    consolidations: int
    memories_merged: int
    connections_updated: int
    dry_run: bool = False
    pairs: list[ConsolidationPair] = Field(default_factory=list)


class StatisticsRequest(BaseModel):
    agent_id: Optional[str] = None


class MemoryStatistics(BaseModel):
    total_memories: int
    text_memories: int
    code_memories: int
    by_type: dict[str, int]
    by_content_type: dict[str, int]
    by_agent: dict[str, int]
    by_project: dict[str, int]
    recent_memories: list[Memory]
    concept_clusters: list[ConceptCluster]
    generated_at: datetime = Field(default_factory=utcnow)


class ListAgentsRequest(BaseModel):
    project: Optional[str] = None


class AgentSummary(BaseModel):
    agent_id: str
    projects: list[str]
    memory_count: int
    last_activity: Optional[datetime] = None
    status: Literal["active", "inactive"]

    @classmethod
    def status_for(cls, last_activity: Optional[datetime]) -> str:
        if last_activity and utcnow() - last_activity < timedelta(hours=24):
            return "active"
        return "inactive"


class ListAgentsResult(BaseModel):
    agents: list[AgentSummary]


class ListProjectsRequest(BaseModel):
    include_stats: bool = True


class ProjectSummary(BaseModel):
    project: str
    memory_count: Optional[int] = None
    agent_count: Optional[int] = None
    first_memory: Optional[datetime] = None
    last_activity: Optional[datetime] = None


class ListProjectsResult(BaseModel):
    projects: list[ProjectSummary]


class RetrieveConnectionsRequest(BaseModel):
    memory_id: Optional[str] = None
    relationship_type: Optional[str] = None
    limit: int = Field(default=50, ge=1, le=1000)


class ConnectionsByEntityRequest(BaseModel):
    entity_id: str = Field(..., min_length=1)
    entity_type: EntityType = EntityType.MEMORY
    limit: int = Field(default=50, ge=1, le=1000)


class ConnectionsResult(BaseModel):
    connections: list[Connection]
    total: int

    @model_validator(mode="before")
    @classmethod
    def fill_total(cls, data: Any) -> Any:
        if isinstance(data, dict) and "total" not in data:
            data = {**data, "total": len(data.get("connections") or [])}
        return data
