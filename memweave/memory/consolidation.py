"""
Consolidation candidate discovery and merge planning.

A CandidateFinder proposes near-duplicate pairs; the orchestrator applies
the merge. The default finder compares embeddings pairwise within each
agent and content type.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import structlog

from memweave.knowledge.embeddings import cosine_similarity
from memweave.models.schemas import Memory, utcnow

logger = structlog.get_logger(__name__)


@dataclass
class CandidatePair:
    first: Memory
    second: Memory
    similarity: float


class CandidateFinder(Protocol):
    def find_candidates(
        self,
        memories: list[Memory],
        embeddings: dict[str, list[float]],
        threshold: float,
        limit: int,
    ) -> list[CandidatePair]: ...


class PairwiseSimilarityFinder:
    """
    Pairwise cosine similarity within (agent, content type) groups.

    Pairs at or above `threshold` are taken greedily from most to least
    similar, so each memory lands in at most one pair per run.
    """

    def find_candidates(
        self,
        memories: list[Memory],
        embeddings: dict[str, list[float]],
        threshold: float,
        limit: int,
    ) -> list[CandidatePair]:
        groups: dict[tuple[Optional[str], str], list[Memory]] = defaultdict(list)
        for memory in memories:
            if memory.memory_id in embeddings:
                groups[(memory.agent_id, memory.content_type.value)].append(memory)

        scored: list[CandidatePair] = []
        for group in groups.values():
            for i, first in enumerate(group):
                for second in group[i + 1 :]:
                    try:
                        similarity = cosine_similarity(
                            embeddings[first.memory_id], embeddings[second.memory_id]
                        )
                    except ValueError:
                        continue
                    if similarity >= threshold:
                        scored.append(CandidatePair(first, second, similarity))

        scored.sort(key=lambda pair: pair.similarity, reverse=True)

        selected: list[CandidatePair] = []
        used: set[str] = set()
        for pair in scored:
            if len(selected) >= limit:
                break
            if pair.first.memory_id in used or pair.second.memory_id in used:
                continue
            used.update((pair.first.memory_id, pair.second.memory_id))
            selected.append(pair)

        logger.debug(
            "consolidation_candidates_found",
            compared_groups=len(groups),
            above_threshold=len(scored),
            selected=len(selected),
        )
        return selected


def choose_survivor(first: Memory, second: Memory) -> tuple[Memory, Memory]:
    """(survivor, absorbed): higher access_count wins, ties go to the older memory."""
    if first.access_count != second.access_count:
        return (first, second) if first.access_count > second.access_count else (second, first)
    return (first, second) if first.created_at <= second.created_at else (second, first)


def merge_updates(
    survivor: Memory,
    absorbed: Memory,
    provenance: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Field updates applied to the survivor when it absorbs a duplicate."""
    context = {**absorbed.context, **survivor.context}
    if provenance:
        history = survivor.context.get("consolidation")
        context["consolidation"] = (history if isinstance(history, list) else []) + [provenance]
    content = absorbed.content if len(absorbed.content) > len(survivor.content) else survivor.content
    return {
        "content": content,
        "tags": survivor.tags + [t for t in absorbed.tags if t not in survivor.tags],
        "confidence": max(survivor.confidence, absorbed.confidence),
        "access_count": survivor.access_count + absorbed.access_count,
        "context": context,
        "merged_from": survivor.merged_from + [absorbed.memory_id] + absorbed.merged_from,
        "updated_at": utcnow(),
    }
