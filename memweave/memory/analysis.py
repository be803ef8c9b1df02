"""
Lightweight content analysis.

Computes the extension fields attached to a memory at creation time:
language, identifiers, patterns and complexity for code; topics,
sentiment and entities for text. Also extracts the concepts linked in the
graph store.
"""

import re
from collections import Counter
from typing import Optional, Union

from memweave.knowledge.preprocessing import extract_code_context
from memweave.models.schemas import CodeFeatures, ContentType, TextFeatures

# Checked in order; first match wins
LANGUAGE_PATTERNS = [
    ("typescript", re.compile(r"\binterface\s+\w+|\btype\s+\w+\s*=|\bimport\s+.*\s+from\s+['\"]|\bexport\s+.*\{")),
    ("python", re.compile(r"\bdef\s+\w+\s*\(|^\s*from\s+[\w.]+\s+import\b|^\s*import\s+\w+\s*$", re.MULTILINE)),
    ("javascript", re.compile(r"\b(?:function|const|let|var)\b.*=|\brequire\(")),
    ("java", re.compile(r"\bpublic\s+class\b|\bprivate\s+|\bprotected\s+")),
    ("cpp", re.compile(r"#include\s*<|\busing\s+namespace\b")),
    ("csharp", re.compile(r"\busing\s+System\b|\bnamespace\s+\w+")),
]

CODE_PATTERNS = [
    ("async_await", re.compile(r"\basync\s+(?:function|def)\b|\bawait\s+")),
    ("promises", re.compile(r"\.then\(|\.catch\(")),
    ("inheritance", re.compile(r"\bclass\s+\w+\s*(?:\(\s*\w+|.*\bextends\b)")),
    ("interfaces", re.compile(r"\binterface\s+\w+")),
    ("error_handling", re.compile(r"\btry\s*[{:].*?(?:\bcatch\b|\bexcept\b)", re.DOTALL)),
]

_BRANCHES = re.compile(r"\b(?:if|for|while|switch|catch|except|elif)\b")

TOPIC_STOPWORDS = frozenset(
    "that this with have will from they been their said each which what were when "
    "where more some like into time very only could other after first well many".split()
)
POSITIVE_WORDS = frozenset(
    ["good", "great", "excellent", "amazing", "wonderful", "perfect", "love", "like"]
)
NEGATIVE_WORDS = frozenset(
    ["bad", "terrible", "awful", "hate", "dislike", "problem", "error", "issue"]
)

_TOPIC_WORD = re.compile(r"\b\w{4,}\b")
_CAPITALIZED_PHRASE = re.compile(r"\b[A-Z][a-z]+(?:\s+[A-Z][a-z]+)*\b")
_QUOTED = re.compile(r"\"([^\"]+)\"")

MAX_TOPICS = 5
MAX_ENTITIES = 10
MAX_CONCEPTS = 5


def detect_language(code: str) -> str:
    for language, pattern in LANGUAGE_PATTERNS:
        if pattern.search(code):
            return language
    return "unknown"


def extract_code_patterns(code: str) -> list[str]:
    return [name for name, pattern in CODE_PATTERNS if pattern.search(code)]


def assess_complexity(code: str) -> str:
    """high above 100 lines or 10 branches, medium above 30 or 5."""
    lines = code.count("\n") + 1
    branches = len(_BRANCHES.findall(code))
    if lines > 100 or branches > 10:
        return "high"
    if lines > 30 or branches > 5:
        return "medium"
    return "low"


def extract_topics(text: str) -> list[str]:
    """Most frequent words of four or more letters."""
    words = [w for w in _TOPIC_WORD.findall(text.lower()) if w not in TOPIC_STOPWORDS]
    return [word for word, _ in Counter(words).most_common(MAX_TOPICS)]


def analyze_sentiment(text: str) -> str:
    words = re.split(r"\W+", text.lower())
    positive = sum(1 for w in words if w in POSITIVE_WORDS)
    negative = sum(1 for w in words if w in NEGATIVE_WORDS)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def extract_entities(text: str) -> list[str]:
    return list(dict.fromkeys(_CAPITALIZED_PHRASE.findall(text)))[:MAX_ENTITIES]


def extract_concepts(text: str) -> list[str]:
    """Capitalized phrases and quoted terms between 4 and 49 characters."""
    candidates = _CAPITALIZED_PHRASE.findall(text) + _QUOTED.findall(text)
    concepts = [c for c in dict.fromkeys(candidates) if 3 < len(c) < 50]
    return concepts[:MAX_CONCEPTS]


def build_features(
    content: str,
    content_type: ContentType,
    language: Optional[str] = None,
) -> Union[CodeFeatures, TextFeatures]:
    """Compute the extension fields for a new memory."""
    if content_type == ContentType.CODE:
        context = extract_code_context(content)
        return CodeFeatures(
            language=language or detect_language(content),
            functions=context.functions,
            classes=context.classes,
            imports=context.imports,
            patterns=extract_code_patterns(content),
            complexity=assess_complexity(content),
        )

    return TextFeatures(
        topics=extract_topics(content),
        sentiment=analyze_sentiment(content),
        entities=extract_entities(content),
    )
