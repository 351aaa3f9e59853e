"""Detect artifacts inside generated markdown replies.

Fenced code blocks become candidate artifacts. Each block is classified as a
mermaid diagram, a chart definition, a document, or code, and receives a
human-readable title derived from its content.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Final

from artifact_forge.storage.content import (
    MERMAID_DIAGRAM_TYPES,
    ArtifactKind,
    is_chart_payload,
    mermaid_diagram_type,
)
from artifact_forge.storage.languages import normalize_language

_CODE_BLOCK_PATTERN: Final[re.Pattern[str]] = re.compile(r"```([\w+#-]+)?[ \t]*\n?([\s\S]*?)```")
_HTML_TITLE_PATTERN: Final[re.Pattern[str]] = re.compile(r"<title[^>]*>(.*?)</title>", re.I | re.S)
_JS_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?:function\s+(\w+)|const\s+(\w+)\s*=|export\s+(?:default\s+)?(?:function\s+)?(\w+))"
)
_PLAIN_LANGUAGES: Final[frozenset[str]] = frozenset({"", "text", "plain", "plaintext"})
_SCRIPT_FAMILY: Final[frozenset[str]] = frozenset({"javascript", "typescript", "jsx", "tsx"})

_DIAGRAM_TITLES: Final[dict[str, str]] = {
    "flowchart": "Flowchart diagram",
    "sequence": "Sequence diagram",
    "class": "Class diagram",
    "gantt": "Gantt chart",
    "pie": "Pie chart",
}

_LANGUAGE_TITLES: Final[dict[str, str]] = {
    "html": "HTML document",
    "css": "CSS stylesheet",
    "javascript": "JavaScript code",
    "typescript": "TypeScript code",
    "jsx": "React JSX component",
    "tsx": "React TSX component",
    "python": "Python code",
    "java": "Java code",
    "cpp": "C++ code",
    "c": "C code",
    "go": "Go code",
    "rust": "Rust code",
    "php": "PHP code",
    "markdown": "Markdown document",
}


@dataclass(frozen=True, slots=True)
class ParsedArtifact:
    kind: ArtifactKind
    language: str
    title: str
    content: str


def parse_artifacts(markdown: str) -> list[ParsedArtifact]:
    """Return one ``ParsedArtifact`` per non-empty, classifiable fenced block."""

    artifacts: list[ParsedArtifact] = []
    for index, match in enumerate(_iter_blocks(markdown)):
        language, body = match
        kind = classify_block(language, body)
        if kind is None:
            continue
        artifacts.append(
            ParsedArtifact(
                kind=kind,
                language=language,
                title=artifact_title(language, body, index),
                content=body,
            )
        )
    return artifacts


def classify_block(language: str, content: str) -> ArtifactKind | None:
    lang = normalize_language(language)
    if lang == "mermaid":
        return ArtifactKind.MERMAID
    if lang == "json" and is_chart_payload(content):
        return ArtifactKind.CHART
    if lang == "markdown":
        return ArtifactKind.DOCUMENT
    if lang in _PLAIN_LANGUAGES:
        # Untagged fences are only kept when they sniff as a diagram.
        return ArtifactKind.MERMAID if _looks_like_mermaid(content) else None
    return ArtifactKind.CODE


def artifact_title(language: str, content: str, index: int = 0) -> str:
    lang = normalize_language(language)

    if lang == "html":
        found = _HTML_TITLE_PATTERN.search(content)
        if found and found.group(1).strip():
            return found.group(1).strip()

    if lang in _SCRIPT_FAMILY:
        found = _JS_NAME_PATTERN.search(content)
        if found:
            name = next(group for group in found.groups() if group)
            suffix = "component" if name[0].isupper() else "function"
            return f"{name} {suffix}"

    if lang == "mermaid" or (lang in _PLAIN_LANGUAGES and _looks_like_mermaid(content)):
        return _DIAGRAM_TITLES.get(mermaid_diagram_type(content), "Mermaid diagram")

    if lang == "json" and is_chart_payload(content):
        return f"{json.loads(content)['type']} chart"

    base = _LANGUAGE_TITLES.get(lang, f"{(language or 'text').upper()} code")
    return f"{base} {index + 1}" if index > 0 else base


def _iter_blocks(markdown: str) -> list[tuple[str, str]]:
    blocks: list[tuple[str, str]] = []
    for match in _CODE_BLOCK_PATTERN.finditer(markdown):
        body = match.group(2).strip()
        if body:
            blocks.append(((match.group(1) or "text").lower(), body))
    return blocks


def _looks_like_mermaid(content: str) -> bool:
    words = content.strip().lower().split(maxsplit=1)
    return bool(words) and any(words[0].startswith(prefix) for prefix in MERMAID_DIAGRAM_TYPES)


__all__ = [
    "ParsedArtifact",
    "artifact_title",
    "classify_block",
    "parse_artifacts",
]
