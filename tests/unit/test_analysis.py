"""Unit tests for content analysis helpers."""

import pytest

from memweave.memory.analysis import (
    analyze_sentiment,
    assess_complexity,
    build_features,
    detect_language,
    extract_code_patterns,
    extract_concepts,
    extract_entities,
    extract_topics,
)
from memweave.models.schemas import CodeFeatures, ContentType, TextFeatures


class TestDetectLanguage:
    """Test language detection."""

    @pytest.mark.parametrize(
        "code,expected",
        [
            ("interface User { name: string }", "typescript"),
            ("def main():\n    pass", "python"),
            ("const total = items.length;", "javascript"),
            ("#include <vector>", "cpp"),
            ("plain words here", "unknown"),
        ],
    )
    def test_detects(self, code, expected):
        assert detect_language(code) == expected


class TestCodeAnalysis:
    """Test code pattern and complexity detection."""

    def test_patterns(self):
        code = (
            "class Service(Base):\n"
            "    async def fetch(self):\n"
            "        try:\n"
            "            return await self.client.get()\n"
            "        except Exception:\n"
            "            return None\n"
        )

        patterns = extract_code_patterns(code)

        assert "async_await" in patterns
        assert "inheritance" in patterns
        assert "error_handling" in patterns
        assert "promises" not in patterns

    def test_promises(self):
        assert extract_code_patterns("fetch(url).then(r => r.json())") == ["promises"]

    def test_complexity_low(self):
        assert assess_complexity("x = 1") == "low"

    def test_complexity_medium_by_lines(self):
        assert assess_complexity("\n".join(["x = 1"] * 31)) == "medium"

    def test_complexity_high_by_branches(self):
        assert assess_complexity("\n".join(["if x: pass"] * 11)) == "high"


class TestTextAnalysis:
    """Test topic, sentiment and entity extraction."""

    def test_topics_by_frequency(self):
        text = "deploy deploy deploy pipeline pipeline database"

        assert extract_topics(text)[:2] == ["deploy", "pipeline"]

    def test_topics_skip_stopwords_and_short_words(self):
        topics = extract_topics("that this with cat dog deployment")

        assert topics == ["deployment"]

    def test_sentiment(self):
        assert analyze_sentiment("This is a great and excellent result") == "positive"
        assert analyze_sentiment("A terrible error occurred") == "negative"
        assert analyze_sentiment("The meeting is at noon") == "neutral"

    def test_entities(self):
        entities = extract_entities("Alice met Bob Smith in Paris")

        assert entities == ["Alice", "Bob Smith", "Paris"]

    def test_concepts_include_quoted_terms(self):
        concepts = extract_concepts('We discussed "event sourcing" with the Platform Team')

        assert "Platform Team" in concepts
        assert "event sourcing" in concepts

    def test_concepts_length_bounds(self):
        """Terms of three characters or fewer are dropped."""
        assert extract_concepts("Bob and Ann") == []


class TestBuildFeatures:
    """Test feature assembly per content type."""

    def test_code_features(self):
        features = build_features("def load():\n    pass", ContentType.CODE)

        assert isinstance(features, CodeFeatures)
        assert features.language == "python"
        assert features.functions == ["load"]
        assert features.complexity == "low"

    def test_explicit_language_wins(self):
        features = build_features("def load():\n    pass", ContentType.CODE, "ruby")

        assert features.language == "ruby"

    def test_text_features(self):
        features = build_features("Great news about the release", ContentType.TEXT)

        assert isinstance(features, TextFeatures)
        assert features.sentiment == "positive"
        assert "Great" in features.entities
