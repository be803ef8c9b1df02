"""
Knowledge Infrastructure.

Embedding generation plus the vector and graph halves of memory storage:

- embeddings: three-tier embedding generator (remote, local, hash)
- preprocessing: text/code normalization and code context extraction
- vector_store / pinecone_store / memory_vector_store: similarity search
- graph_store / neo4j_store / memory_graph_store: relationship graph

The Pinecone and Neo4j adapters are imported from their own modules.
"""

from memweave.knowledge.embeddings import (
    EmbeddingGenerator,
    EmbeddingRequest,
    EmbeddingResult,
    cosine_similarity,
    hash_embedding,
)
from memweave.knowledge.graph_store import GraphStore
from memweave.knowledge.memory_graph_store import InMemoryGraphStore
from memweave.knowledge.memory_vector_store import InMemoryVectorStore
from memweave.knowledge.preprocessing import StructuralContext
from memweave.knowledge.vector_store import (
    VectorDocument,
    VectorHit,
    VectorQuery,
    VectorStore,
)

__all__ = [
    "EmbeddingGenerator",
    "EmbeddingRequest",
    "EmbeddingResult",
    "GraphStore",
    "InMemoryGraphStore",
    "InMemoryVectorStore",
    "StructuralContext",
    "VectorDocument",
    "VectorHit",
    "VectorQuery",
    "VectorStore",
    "cosine_similarity",
    "hash_embedding",
]
