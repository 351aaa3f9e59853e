"""Type-specific content processing applied before artifact content is stored.

Each artifact kind has its own normalization:

- ``code``: surrounding markdown fences are stripped.
- ``document``: surrounding whitespace is trimmed.
- ``chart``: must be a JSON object with ``type`` and ``data``; re-serialized
  with two-space indentation.
- ``mermaid``: trimmed; an unrecognized diagram header is logged, not rejected.
"""

from __future__ import annotations

import json
from enum import StrEnum
from typing import Any, Final

import structlog

MERMAID_DIAGRAM_TYPES: Final[dict[str, str]] = {
    "graph": "flowchart",
    "flowchart": "flowchart",
    "sequencediagram": "sequence",
    "classdiagram": "class",
    "statediagram": "state",
    "erdiagram": "er",
    "gantt": "gantt",
    "pie": "pie",
    "journey": "journey",
    "gitgraph": "git",
    "mindmap": "mindmap",
    "timeline": "timeline",
}

_FENCE: Final[str] = "```"


class ArtifactKind(StrEnum):
    """Kinds of generated work products."""

    CODE = "code"
    DOCUMENT = "document"
    CHART = "chart"
    MERMAID = "mermaid"


class ArtifactValidationError(ValueError):
    """Raised when artifact content is malformed for its declared kind."""


def coerce_kind(value: ArtifactKind | str) -> ArtifactKind:
    if isinstance(value, ArtifactKind):
        return value
    normalized = str(value).strip().lower()
    try:
        return ArtifactKind(normalized)
    except ValueError as exc:
        allowed = ", ".join(item.value for item in ArtifactKind)
        raise ArtifactValidationError(
            f"unsupported artifact kind {value!r}; expected one of: {allowed}"
        ) from exc


def prepare_content(
    kind: ArtifactKind | str,
    content: str,
    *,
    logger: Any | None = None,
) -> str:
    """Validate and normalize ``content`` for ``kind``; raise on malformed input."""

    if not isinstance(content, str):
        raise ArtifactValidationError("artifact content must be a string")

    resolved = coerce_kind(kind)
    if resolved is ArtifactKind.CODE:
        return strip_code_fence(content)
    if resolved is ArtifactKind.DOCUMENT:
        return content.strip()
    if resolved is ArtifactKind.CHART:
        return _normalize_chart(content)

    trimmed = content.strip()
    if mermaid_diagram_type(trimmed) == "unknown":
        log = logger if logger is not None else structlog.get_logger(__name__)
        log.warning("mermaid_type_unrecognized", header=_first_line(trimmed)[:80])
    return trimmed


def strip_code_fence(content: str) -> str:
    """Remove a wrapping ```lang ... ``` fence when the whole body is fenced."""

    trimmed = content.strip()
    if not trimmed.startswith(_FENCE):
        return trimmed
    lines = trimmed.split("\n")
    if len(lines) > 2 and lines[-1].strip() == _FENCE:
        return "\n".join(lines[1:-1])
    return trimmed


def is_chart_payload(content: str) -> bool:
    """``True`` for JSON objects shaped like a chart definition."""

    try:
        parsed = json.loads(content)
    except (TypeError, ValueError):
        return False
    if not isinstance(parsed, dict) or not parsed.get("type"):
        return False
    data = parsed.get("data")
    return isinstance(data, dict) and bool(data.get("labels") or data.get("datasets"))


def mermaid_diagram_type(content: str) -> str:
    header = _first_line(content).strip().lower()
    for prefix, diagram_type in MERMAID_DIAGRAM_TYPES.items():
        if header.startswith(prefix):
            return diagram_type
    return "unknown"


def describe_content(
    kind: ArtifactKind | str,
    content: str,
    *,
    language: str | None = None,
) -> dict[str, object]:
    """Summarize stored content for listings and previews."""

    resolved = coerce_kind(kind)
    metadata: dict[str, object] = {"kind": resolved.value, "size": len(content)}

    if resolved is ArtifactKind.CODE:
        metadata["language"] = language
        metadata["lines"] = len(content.split("\n"))
    elif resolved is ArtifactKind.DOCUMENT:
        metadata["word_count"] = len(content.split())
    elif resolved is ArtifactKind.CHART:
        try:
            chart = json.loads(content)
        except ValueError:
            chart = {}
        if isinstance(chart, dict):
            metadata["chart_type"] = chart.get("type")
            metadata["data_points"] = _chart_data_points(chart)
    else:
        metadata["diagram_type"] = mermaid_diagram_type(content)

    return metadata


def _normalize_chart(content: str) -> str:
    try:
        parsed = json.loads(content)
    except ValueError as exc:
        raise ArtifactValidationError(f"invalid chart data format: {exc}") from exc
    if not isinstance(parsed, dict) or not parsed.get("type") or not parsed.get("data"):
        raise ArtifactValidationError("invalid chart data structure: 'type' and 'data' required")
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def _chart_data_points(chart: dict[str, Any]) -> int:
    data = chart.get("data")
    if not isinstance(data, dict):
        return 0
    datasets = data.get("datasets")
    if not isinstance(datasets, list) or not datasets or not isinstance(datasets[0], dict):
        return 0
    points = datasets[0].get("data")
    return len(points) if isinstance(points, list) else 0


def _first_line(content: str) -> str:
    stripped = content.strip()
    return stripped.split("\n", 1)[0] if stripped else ""


__all__ = [
    "ArtifactKind",
    "ArtifactValidationError",
    "MERMAID_DIAGRAM_TYPES",
    "coerce_kind",
    "describe_content",
    "is_chart_payload",
    "mermaid_diagram_type",
    "prepare_content",
    "strip_code_fence",
]
