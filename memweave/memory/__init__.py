"""
Memory orchestration.

- orchestrator: store/retrieve/delete/connect/consolidate across the stores
- tools: the named operations surface
- classification: pluggable content and memory-type classifiers
- analysis: extension fields computed at creation
- consolidation: near-duplicate discovery and merge planning
- defaults: agent/project resolution for unattributed memories

Example:
    from memweave.memory import MemoryOrchestrator, MemoryTools

    tools = MemoryTools(orchestrator)
    await tools.dispatch("store-memory", {"content": "Deploys run from CI"})
"""

from memweave.memory.classification import (
    ClassificationRule,
    Classifier,
    RuleBasedClassifier,
    default_content_classifier,
    default_memory_type_classifier,
)
from memweave.memory.consolidation import CandidateFinder, PairwiseSimilarityFinder
from memweave.memory.defaults import (
    DefaultResolver,
    GitDefaultResolver,
    ResolvedDefaults,
    StaticDefaultResolver,
)
from memweave.memory.orchestrator import MemoryOrchestrator
from memweave.memory.tools import MemoryTools

__all__ = [
    "CandidateFinder",
    "ClassificationRule",
    "Classifier",
    "DefaultResolver",
    "GitDefaultResolver",
    "MemoryOrchestrator",
    "MemoryTools",
    "PairwiseSimilarityFinder",
    "ResolvedDefaults",
    "RuleBasedClassifier",
    "StaticDefaultResolver",
    "default_content_classifier",
    "default_memory_type_classifier",
]
