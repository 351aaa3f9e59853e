"""
artifact-forge — unit tests for type-specific content processing

File: tests/unit/storage/test_content.py

Purpose
- Validate per-kind normalization applied before content is written.
- Validate content summaries used by listings.
"""

from __future__ import annotations

import json

import pytest

from artifact_forge.storage.content import (
    ArtifactKind,
    ArtifactValidationError,
    coerce_kind,
    describe_content,
    is_chart_payload,
    mermaid_diagram_type,
    prepare_content,
    strip_code_fence,
)

_CHART = {"type": "bar", "data": {"labels": ["a", "b"], "datasets": [{"data": [1, 2]}]}}


class _RecordingLogger:
    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, object]]] = []

    def warning(self, event: str, **fields: object) -> None:
        self.events.append((event, fields))


def test_code_fences_are_stripped() -> None:
    fenced = "```python\nprint('hi')\nprint('bye')\n```"

    assert prepare_content("code", fenced) == "print('hi')\nprint('bye')"
    assert strip_code_fence("  x = 1  ") == "x = 1"
    assert strip_code_fence("```\nunterminated") == "```\nunterminated"


def test_document_is_trimmed() -> None:
    assert prepare_content(ArtifactKind.DOCUMENT, "\n\n# Title\n\nBody\n  ") == "# Title\n\nBody"


def test_chart_is_reindented() -> None:
    stored = prepare_content("chart", json.dumps(_CHART))

    assert stored == json.dumps(_CHART, indent=2)
    assert json.loads(stored) == _CHART


@pytest.mark.parametrize("payload", ["not json", "[1, 2]", '{"type": "bar"}', '{"data": {}}'])
def test_malformed_chart_is_rejected(payload: str) -> None:
    with pytest.raises(ArtifactValidationError):
        prepare_content("chart", payload)


def test_unknown_mermaid_header_is_logged_not_rejected() -> None:
    logger = _RecordingLogger()

    stored = prepare_content("mermaid", "  notadiagram\n  A --> B  ", logger=logger)

    assert stored == "notadiagram\n  A --> B"
    assert [event for event, _ in logger.events] == ["mermaid_type_unrecognized"]


def test_known_mermaid_header_is_silent() -> None:
    logger = _RecordingLogger()

    prepare_content("mermaid", "graph TD\nA-->B", logger=logger)

    assert logger.events == []


def test_kind_coercion() -> None:
    assert coerce_kind(" Chart ") is ArtifactKind.CHART
    with pytest.raises(ArtifactValidationError, match="unsupported artifact kind"):
        coerce_kind("spreadsheet")


def test_mermaid_diagram_type() -> None:
    assert mermaid_diagram_type("sequenceDiagram\nA->>B: hi") == "sequence"
    assert mermaid_diagram_type("flowchart LR") == "flowchart"
    assert mermaid_diagram_type("") == "unknown"


def test_chart_payload_detection() -> None:
    assert is_chart_payload(json.dumps(_CHART))
    assert not is_chart_payload('{"type": "bar", "data": {}}')
    assert not is_chart_payload("[]")


def test_describe_content_per_kind() -> None:
    assert describe_content("code", "a\nb\nc", language="python") == {
        "kind": "code",
        "size": 5,
        "language": "python",
        "lines": 3,
    }
    assert describe_content("document", "one two  three")["word_count"] == 3
    chart = describe_content("chart", json.dumps(_CHART))
    assert chart["chart_type"] == "bar"
    assert chart["data_points"] == 2
    assert describe_content("mermaid", "pie\n\"a\": 1")["diagram_type"] == "pie"
