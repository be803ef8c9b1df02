"""Data models for memories, connections, sessions and operation payloads."""

from memweave.models.schemas import (
    AgentProfile,
    CodeFeatures,
    ConceptCluster,
    Connection,
    ContentType,
    EntityType,
    Memory,
    MemoryType,
    RelatedMemory,
    RelationshipType,
    Session,
    TextFeatures,
)

__all__ = [
    "AgentProfile",
    "CodeFeatures",
    "ConceptCluster",
    "Connection",
    "ContentType",
    "EntityType",
    "Memory",
    "MemoryType",
    "RelatedMemory",
    "RelationshipType",
    "Session",
    "TextFeatures",
]
