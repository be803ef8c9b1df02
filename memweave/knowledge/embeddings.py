"""
Tiered Embedding Generator.

Turns memory content into fixed-dimension vectors through three tiers:

1. Remote hosted model (Cohere embed-v3 or OpenAI text-embedding-3)
2. Local sentence-transformers pipeline, one model per content type
3. Deterministic character-hash embedding that always succeeds

A tier that raises, or returns a vector of the wrong dimension, is logged
and skipped. `generate()` never raises.

Usage:
    generator = EmbeddingGenerator.from_settings(settings)
    result = await generator.generate("def add(a, b): return a + b", "code", "python")
    result.embedding, result.model_used, result.token_count
"""

from __future__ import annotations

import asyncio
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

import cohere
import structlog
from openai import AsyncOpenAI
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from memweave.config.settings import Settings
from memweave.knowledge.preprocessing import (
    StructuralContext,
    estimate_tokens,
    preprocess_code,
    preprocess_text,
    serialize_structural_context,
)
from memweave.models.schemas import ContentType
from memweave.monitoring.metrics import record_embedding, record_embedding_tier_failure

logger = structlog.get_logger(__name__)

# Thread pool for sync SDK clients and local model inference
_executor = ThreadPoolExecutor(max_workers=4)

HASH_MODEL = "hash-fallback"

RELATIONSHIP_WEIGHTS: dict[str, float] = {
    "CREATED": 1.0,
    "REFERENCES": 0.8,
    "SIMILAR_TO": 0.9,
    "IN_SESSION": 0.7,
    "DEPENDS_ON": 0.85,
    "IMPLEMENTS": 0.9,
    "CALLS": 0.75,
}
DEFAULT_RELATIONSHIP_WEIGHT = 0.6


def _is_retryable(exception: BaseException) -> bool:
    """Check if exception should trigger retry."""
    error_str = str(exception).lower()
    return any(keyword in error_str for keyword in ["rate", "limit", "timeout", "unavailable"])


def _log_retry(retry_state) -> None:
    logger.warning(
        "embedding_provider_retry",
        attempt=retry_state.attempt_number,
        wait=retry_state.next_action.sleep if retry_state.next_action else 0,
    )


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class EmbeddingResult:
    """Vector plus the model that produced it."""

    embedding: list[float]
    model_used: str
    token_count: int
    tier: str


@dataclass
class EmbeddingRequest:
    """One item of a batch request."""

    text: str
    content_type: ContentType = ContentType.TEXT
    language: Optional[str] = None


class EmbeddingProvider(Protocol):
    """A single embedding tier."""

    tier: str

    def model_name(self, content_type: ContentType) -> str: ...

    async def embed(
        self,
        text: str,
        content_type: ContentType,
        is_query: bool = False,
    ) -> list[float]: ...


# =============================================================================
# Tier 1: Remote Providers
# =============================================================================


class CohereEmbeddingProvider:
    """
    Cohere embed-v3 provider.

    The sync Cohere client runs in a thread pool. Transient failures are
    retried with exponential backoff before the tier gives up.
    """

    tier = "remote"
    INPUT_TYPE_DOCUMENT = "search_document"
    INPUT_TYPE_QUERY = "search_query"

    def __init__(self, api_key: str, model: str = "embed-english-light-v3.0") -> None:
        self._api_key = api_key
        self._model = model
        self._client: cohere.ClientV2 | None = None

    @property
    def client(self) -> cohere.ClientV2:
        """Get or create the Cohere client."""
        if self._client is None:
            self._client = cohere.ClientV2(api_key=self._api_key)
        return self._client

    def model_name(self, content_type: ContentType) -> str:
        return self._model

    def _embed_sync(self, text: str, input_type: str) -> list[float]:
        response = self.client.embed(
            model=self._model,
            texts=[text],
            input_type=input_type,
            embedding_types=["float"],
        )
        return list(response.embeddings.float_[0])

    @retry(
        retry=retry_if_exception(_is_retryable),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def embed(
        self,
        text: str,
        content_type: ContentType,
        is_query: bool = False,
    ) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        input_type = self.INPUT_TYPE_QUERY if is_query else self.INPUT_TYPE_DOCUMENT
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            _executor,
            lambda: self._embed_sync(text, input_type),
        )


class OpenAIEmbeddingProvider:
    """OpenAI text-embedding-3 provider, truncated to the deployment dimension."""

    tier = "remote"

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimension: int = 384,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model
        self._dimension = dimension

    def model_name(self, content_type: ContentType) -> str:
        return self._model

    @retry(
        retry=retry_if_exception(_is_retryable),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        stop=stop_after_attempt(3),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def embed(
        self,
        text: str,
        content_type: ContentType,
        is_query: bool = False,
    ) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        response = await self._client.embeddings.create(
            model=self._model,
            input=text,
            dimensions=self._dimension,
        )
        return list(response.data[0].embedding)


# =============================================================================
# Tier 2: Local Provider
# =============================================================================


class SentenceTransformerProvider:
    """
    On-device sentence-transformers pipelines.

    Text and code use separate models. Each is loaded on first use and
    inference runs in the thread pool.
    """

    tier = "local"

    def __init__(self, text_model: str, code_model: str) -> None:
        self._model_names = {
            ContentType.TEXT: text_model,
            ContentType.CODE: code_model,
        }
        self._models: dict[ContentType, object] = {}

    def model_name(self, content_type: ContentType) -> str:
        return self._model_names[content_type]

    def _load(self, content_type: ContentType):
        if content_type not in self._models:
            from sentence_transformers import SentenceTransformer

            name = self._model_names[content_type]
            logger.info("local_embedding_model_loading", model=name, content_type=content_type.value)
            self._models[content_type] = SentenceTransformer(name)
        return self._models[content_type]

    def _encode_sync(self, text: str, content_type: ContentType) -> list[float]:
        model = self._load(content_type)
        vector = model.encode(text, normalize_embeddings=True)
        return [float(x) for x in vector]

    async def embed(
        self,
        text: str,
        content_type: ContentType,
        is_query: bool = False,
    ) -> list[float]:
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(
            _executor,
            lambda: self._encode_sync(text, content_type),
        )


# =============================================================================
# Tier 3: Hash Embedding
# =============================================================================


def hash_embedding(text: str, dimension: int) -> list[float]:
    """Accumulate character codes into buckets, then L2-normalize."""
    vector = [0.0] * dimension
    for char in text:
        code = ord(char)
        vector[code % dimension] += (code / 255) * 0.1

    magnitude = math.sqrt(sum(v * v for v in vector))
    if magnitude == 0:
        return vector
    return [v / magnitude for v in vector]


def cosine_similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Raises:
        ValueError: If the dimensions differ.
    """
    if len(v1) != len(v2):
        raise ValueError(f"Vector dimensions must match ({len(v1)} != {len(v2)})")

    dot = sum(a * b for a, b in zip(v1, v2))
    norm1 = math.sqrt(sum(a * a for a in v1))
    norm2 = math.sqrt(sum(b * b for b in v2))
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


# =============================================================================
# Generator
# =============================================================================


class EmbeddingGenerator:
    """
    Embedding generation with a three-tier fallback chain.

    Every tier must produce vectors of `dimension`; anything else counts as
    a tier failure so that all memories in a deployment stay comparable.
    """

    def __init__(
        self,
        dimension: int = 384,
        max_chars: int = 8000,
        remote: EmbeddingProvider | None = None,
        local: EmbeddingProvider | None = None,
    ) -> None:
        self._dimension = dimension
        self._max_chars = max_chars
        self._providers: list[EmbeddingProvider] = [p for p in (remote, local) if p is not None]

        logger.info(
            "embedding_generator_initialized",
            dimension=dimension,
            tiers=[p.tier for p in self._providers] + ["hash"],
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> EmbeddingGenerator:
        """Build the tier chain described by settings."""
        remote: EmbeddingProvider | None = None
        if settings.remote_embeddings_enabled:
            if settings.remote_embedding_provider == "cohere" and settings.cohere_api_key:
                remote = CohereEmbeddingProvider(
                    api_key=settings.cohere_api_key.get_secret_value(),
                    model=settings.cohere_embedding_model,
                )
            elif settings.remote_embedding_provider == "openai" and settings.openai_api_key:
                remote = OpenAIEmbeddingProvider(
                    api_key=settings.openai_api_key.get_secret_value(),
                    model=settings.openai_embedding_model,
                    dimension=settings.embedding_dimension,
                )
            else:
                logger.warning(
                    "remote_embeddings_missing_api_key",
                    provider=settings.remote_embedding_provider,
                )

        local: EmbeddingProvider | None = None
        if settings.local_embeddings_enabled:
            local = SentenceTransformerProvider(
                text_model=settings.local_text_embedding_model,
                code_model=settings.local_code_embedding_model,
            )

        return cls(
            dimension=settings.embedding_dimension,
            max_chars=settings.embedding_max_chars,
            remote=remote,
            local=local,
        )

    @property
    def dimension(self) -> int:
        return self._dimension

    def _prepare(self, text: str, content_type: ContentType, language: str | None) -> str:
        if content_type == ContentType.CODE:
            return preprocess_code(text, language, self._max_chars)
        return preprocess_text(text, self._max_chars)

    async def generate(
        self,
        text: str,
        content_type: ContentType | str = ContentType.TEXT,
        language: str | None = None,
        is_query: bool = False,
    ) -> EmbeddingResult:
        """
        Generate an embedding, escalating through the tiers.

        Args:
            text: Raw content.
            content_type: "text" or "code"; selects preprocessing and local model.
            language: Programming language for code content.
            is_query: Embed as a search query rather than a stored document.

        Returns:
            EmbeddingResult with a vector of the configured dimension.
        """
        content_type = ContentType(content_type)
        token_count = estimate_tokens(text)
        prepared = self._prepare(text, content_type, language)

        for provider in self._providers:
            model = provider.model_name(content_type)
            try:
                vector = await provider.embed(prepared, content_type, is_query)
                if len(vector) != self._dimension:
                    raise ValueError(
                        f"{model} returned {len(vector)} dimensions, expected {self._dimension}"
                    )
            except Exception as e:
                record_embedding_tier_failure(provider.tier)
                logger.warning(
                    "embedding_tier_failed",
                    tier=provider.tier,
                    model=model,
                    content_type=content_type.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue

            record_embedding(provider.tier, content_type.value)
            logger.debug(
                "embedding_generated",
                tier=provider.tier,
                model=model,
                token_count=token_count,
            )
            return EmbeddingResult(
                embedding=vector,
                model_used=model,
                token_count=token_count,
                tier=provider.tier,
            )

        source = text + (language or "") if content_type == ContentType.CODE else text
        record_embedding("hash", content_type.value)
        logger.info("embedding_hash_fallback_used", content_type=content_type.value)
        return EmbeddingResult(
            embedding=hash_embedding(source, self._dimension),
            model_used=HASH_MODEL,
            token_count=token_count,
            tier="hash",
        )

    async def generate_batch(self, requests: list[EmbeddingRequest]) -> list[EmbeddingResult]:
        """Embed every request independently; results keep input order."""
        return list(
            await asyncio.gather(
                *(self.generate(r.text, r.content_type, r.language) for r in requests)
            )
        )

    async def generate_graph_aware(
        self,
        code: str,
        language: str | None,
        structural_context: StructuralContext,
    ) -> EmbeddingResult:
        """Embed code with its structural context serialized ahead of it."""
        summary = serialize_structural_context(structural_context)
        enriched = f"{summary}\n{code}" if summary else code
        return await self.generate(enriched, ContentType.CODE, language)

    @staticmethod
    def similarity(v1: Sequence[float], v2: Sequence[float]) -> float:
        """Cosine similarity between two embeddings."""
        return cosine_similarity(v1, v2)

    @staticmethod
    def relationship_weight(
        v1: Sequence[float],
        v2: Sequence[float],
        relationship_type: str,
    ) -> float:
        """Similarity scaled by how strongly the relationship type binds, clamped to [0, 1]."""
        multiplier = RELATIONSHIP_WEIGHTS.get(relationship_type, DEFAULT_RELATIONSHIP_WEIGHT)
        return max(0.0, min(1.0, cosine_similarity(v1, v2) * multiplier))
