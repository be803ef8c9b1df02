"""
Content and memory-type classification.

Classifiers are ordered lists of predicate -> label rules. The first rule
whose predicate matches wins; otherwise the default label is returned.
Anything implementing the Classifier protocol (for example a model-based
classifier) can be passed to the orchestrator instead.

Usage:
    content_type = default_content_classifier().classify(text)
    memory_type = default_memory_type_classifier().classify(text, content_type)
"""

import re
from dataclasses import dataclass
from typing import Callable, Generic, Optional, Protocol, TypeVar

from memweave.models.schemas import ContentType, MemoryType

L = TypeVar("L")
L_co = TypeVar("L_co", covariant=True)

Predicate = Callable[[str, Optional[ContentType]], bool]


class Classifier(Protocol[L_co]):
    """Assigns a label to content."""

    def classify(self, content: str, content_type: Optional[ContentType] = None) -> L_co: ...


@dataclass(frozen=True)
class ClassificationRule(Generic[L]):
    """A single predicate -> label rule."""

    label: L
    predicate: Predicate
    name: str = ""

    def matches(self, content: str, content_type: Optional[ContentType] = None) -> bool:
        return self.predicate(content, content_type)


class RuleBasedClassifier(Generic[L]):
    """
    First-match-wins rule classifier.

    Args:
        rules: Rules in priority order
        default: Label when no rule matches
    """

    def __init__(self, rules: list[ClassificationRule[L]], default: L):
        self._rules = list(rules)
        self._default = default

    @property
    def rules(self) -> list[ClassificationRule[L]]:
        return list(self._rules)

    def classify(self, content: str, content_type: Optional[ContentType] = None) -> L:
        for rule in self._rules:
            if rule.matches(content, content_type):
                return rule.label
        return self._default


def regex_rule(label: L, pattern: str, name: str = "", flags: int = 0) -> ClassificationRule[L]:
    """Rule that matches when `pattern` is found anywhere in the content."""
    compiled = re.compile(pattern, flags)
    return ClassificationRule(
        label=label,
        predicate=lambda content, _content_type: compiled.search(content) is not None,
        name=name or pattern,
    )


# =============================================================================
# Default Rules
# =============================================================================

CODE_PATTERNS = {
    "js_function": r"\bfunction\s+\w+\s*\(",
    "class_declaration": r"\bclass\s+\w+",
    "es_import": r"\bimport\s+.+\s+from\b",
    "const_assignment": r"\bconst\s+\w+\s*=",
    "python_def": r"\bdef\s+\w+\s*\(",
    "c_include": r"#include\s*<",
    "java_class": r"\bpublic\s+class\b",
}

EPISODIC_PATTERN = r"\b(user|said|asked|told|conversation|yesterday|today)\b"
WORKING_PATTERN = r"\b(current|currently|temporary|now|working on|in progress)\b"


def default_content_classifier() -> RuleBasedClassifier[ContentType]:
    """Code-syntax markers classify as code; everything else is text."""
    return RuleBasedClassifier(
        rules=[regex_rule(ContentType.CODE, pattern, name) for name, pattern in CODE_PATTERNS.items()],
        default=ContentType.TEXT,
    )


def default_memory_type_classifier() -> RuleBasedClassifier[MemoryType]:
    """code -> procedural, conversational -> episodic, transient -> working, else semantic."""
    return RuleBasedClassifier(
        rules=[
            ClassificationRule(
                label=MemoryType.PROCEDURAL,
                predicate=lambda _content, content_type: content_type == ContentType.CODE,
                name="code_is_procedural",
            ),
            regex_rule(MemoryType.EPISODIC, EPISODIC_PATTERN, "conversational", re.IGNORECASE),
            regex_rule(MemoryType.WORKING, WORKING_PATTERN, "transient", re.IGNORECASE),
        ],
        default=MemoryType.SEMANTIC,
    )
