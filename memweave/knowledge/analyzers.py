"""
Per-content-type analyzers for keyword scoring.

Text: word tokenizer, lowercase, English stopwords, light suffix stemming.
Code: whitespace tokenizer and lowercase, so identifiers stay whole.
"""

import re
from typing import Callable

from memweave.models.schemas import ContentType

Analyzer = Callable[[str], list[str]]

STOPWORDS = frozenset(
    """
    a an and are as at be but by for from has have he her his i if in into is it its
    me my no not of on or our she so such that the their them then there these they
    this to was we were what when where which who will with you your
    """.split()
)

_WORD = re.compile(r"\w+")
_SUFFIXES = ("ational", "ization", "fulness", "ousness", "iveness", "ations", "ingly",
             "ments", "ness", "ment", "ing", "ies", "ied", "ed", "es", "ly", "s")


def stem(word: str) -> str:
    """Strip one common English suffix, keeping at least a three-letter stem."""
    for suffix in _SUFFIXES:
        if word.endswith(suffix) and len(word) - len(suffix) >= 3:
            if suffix in ("ies", "ied"):
                return word[: -len(suffix)] + "y"
            return word[: -len(suffix)]
    return word


def analyze_text(text: str) -> list[str]:
    tokens = (token.lower() for token in _WORD.findall(text))
    return [stem(token) for token in tokens if token not in STOPWORDS]


def analyze_code(text: str) -> list[str]:
    return [token.lower() for token in text.split()]


ANALYZERS: dict[ContentType, Analyzer] = {
    ContentType.TEXT: analyze_text,
    ContentType.CODE: analyze_code,
}


def keyword_score(query: str, content: str, content_type: ContentType) -> float:
    """Fraction of analyzed query terms that occur in the analyzed content."""
    analyzer = ANALYZERS[content_type]
    query_terms = set(analyzer(query))
    if not query_terms:
        return 0.0
    content_terms = set(analyzer(content))
    return len(query_terms & content_terms) / len(query_terms)
