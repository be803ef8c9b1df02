"""
Content preprocessing ahead of embedding.

Text is normalized and truncated; code is prefixed with its language and a
context header naming its key identifiers so that the embedding captures
structure as well as tokens.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field

TRUNCATION_SUFFIX = "..."
CODE_TRUNCATION_MARKER = "\n// ... (truncated)"

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED_TEXT_CHARS = re.compile(r"[^\w\s.,!?;:()\-'\"]")

_FUNCTION_PATTERNS = [
    re.compile(r"\bfunction\s+(\w+)\s*\("),
    re.compile(r"\b(?:const|let|var)\s+(\w+)\s*=\s*(?:async\s+)?(?:function\b|\([^)]*\)\s*=>|\w+\s*=>)"),
    re.compile(r"\bdef\s+(\w+)\s*\("),
    re.compile(r"\bfn\s+(\w+)\s*[<(]"),
    re.compile(r"\bfunc\s+(\w+)\s*\("),
    re.compile(
        r"\b(?:public|private|protected|static|internal)\s+(?:static\s+)?(?:async\s+)?"
        r"[\w<>\[\]]+\s+(\w+)\s*\("
    ),
]
_CLASS_PATTERN = re.compile(r"\b(?:class|interface|struct)\s+(\w+)")
_IMPORT_PATTERNS = [
    re.compile(r"\bimport\s+.*?\s+from\s+['\"]([^'\"]+)['\"]"),
    re.compile(r"\brequire\(\s*['\"]([^'\"]+)['\"]\s*\)"),
    re.compile(r"^\s*from\s+([\w.]+)\s+import\b", re.MULTILINE),
    re.compile(r"^\s*import\s+([\w.]+)\s*;?\s*$", re.MULTILINE),
    re.compile(r"#include\s*[<\"]([^>\"]+)[>\"]"),
    re.compile(r"^\s*using\s+([\w.]+)\s*;", re.MULTILINE),
]


@dataclass
class CodeContext:
    """Key identifiers extracted from a code snippet."""

    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.functions or self.classes or self.imports)


@dataclass
class StructuralContext:
    """Structure supplied by a caller for graph-aware code embeddings."""

    functions: list[str] = field(default_factory=list)
    classes: list[str] = field(default_factory=list)
    imports: list[str] = field(default_factory=list)
    call_graph: dict[str, list[str]] = field(default_factory=dict)


def _unique(items: list[str]) -> list[str]:
    return list(dict.fromkeys(item for item in items if item))


def extract_code_context(code: str) -> CodeContext:
    """Pull function, class and import names out of source text."""
    functions: list[str] = []
    for pattern in _FUNCTION_PATTERNS:
        functions.extend(pattern.findall(code))

    imports: list[str] = []
    for pattern in _IMPORT_PATTERNS:
        imports.extend(pattern.findall(code))

    return CodeContext(
        functions=_unique(functions),
        classes=_unique(_CLASS_PATTERN.findall(code)),
        imports=_unique(imports),
    )


def estimate_tokens(text: str) -> int:
    """Roughly four characters per token."""
    return math.ceil(len(text) / 4)


def preprocess_text(text: str, max_chars: int = 8000) -> str:
    """Collapse whitespace, drop unusual symbols and truncate."""
    cleaned = _WHITESPACE.sub(" ", text.strip())
    cleaned = _DISALLOWED_TEXT_CHARS.sub("", cleaned)
    if len(cleaned) > max_chars:
        cleaned = cleaned[:max_chars] + TRUNCATION_SUFFIX
    return cleaned


def preprocess_code(code: str, language: str | None = None, max_chars: int = 8000) -> str:
    """
    Normalize code and prepend language and context headers.

    The header names at most five functions, classes and dependencies so
    that long files still surface their key identifiers after truncation.
    """
    normalized = code.replace("\r\n", "\n").replace("\t", "  ").strip()

    header_lines = []
    if language and language != "unknown":
        header_lines.append(f"// Language: {language}")

    context = extract_code_context(normalized)
    if not context.is_empty:
        parts = []
        if context.functions:
            parts.append(f"Functions: {', '.join(context.functions[:5])}")
        if context.classes:
            parts.append(f"Classes: {', '.join(context.classes[:5])}")
        if context.imports:
            parts.append(f"Dependencies: {', '.join(context.imports[:5])}")
        header_lines.append(f"// Context: {'; '.join(parts)}")

    processed = "\n".join(header_lines + [normalized]) if header_lines else normalized
    if len(processed) > max_chars:
        processed = processed[:max_chars] + CODE_TRUNCATION_MARKER
    return processed


def serialize_structural_context(context: StructuralContext) -> str:
    """Render structural context as comment lines for graph-aware embeddings."""
    lines = []
    if context.functions:
        lines.append(f"// Functions: {', '.join(context.functions)}")
    if context.classes:
        lines.append(f"// Classes: {', '.join(context.classes)}")
    if context.imports:
        lines.append(f"// Imports: {', '.join(context.imports)}")
    if context.call_graph:
        edges = "; ".join(
            f"{caller} -> [{', '.join(callees)}]"
            for caller, callees in context.call_graph.items()
        )
        lines.append(f"// Call Graph: {edges}")
    return "\n".join(lines)
