"""
artifact-forge — unit tests for artifact detection in markdown replies

File: tests/unit/storage/test_extraction.py
"""

from __future__ import annotations

import json

from artifact_forge.storage.content import ArtifactKind
from artifact_forge.storage.extraction import artifact_title, classify_block, parse_artifacts

_CHART = json.dumps({"type": "pie", "data": {"labels": ["a"], "datasets": [{"data": [1]}]}})

_REPLY = f"""Here is your page:

```html
<html><head><title>Landing Page</title></head><body></body></html>
```

And a diagram:

```mermaid
sequenceDiagram
A->>B: hi
```

```json
{_CHART}
```

```
graph TD
A --> B
```

```
just some text
```

```python
```
"""


def test_parse_artifacts_classifies_and_titles_blocks() -> None:
    parsed = parse_artifacts(_REPLY)

    assert [(item.kind, item.language, item.title) for item in parsed] == [
        (ArtifactKind.CODE, "html", "Landing Page"),
        (ArtifactKind.MERMAID, "mermaid", "Sequence diagram"),
        (ArtifactKind.CHART, "json", "pie chart"),
        (ArtifactKind.MERMAID, "text", "Flowchart diagram"),
    ]
    assert parsed[0].content.startswith("<html>")


def test_classify_block() -> None:
    assert classify_block("md", "# Notes") is ArtifactKind.DOCUMENT
    assert classify_block("json", '{"a": 1}') is ArtifactKind.CODE
    assert classify_block("", "hello world") is None
    assert classify_block("rust", "fn main() {}") is ArtifactKind.CODE


def test_artifact_title_fallbacks() -> None:
    assert artifact_title("javascript", "function renderChart() {}") == "renderChart function"
    assert artifact_title("jsx", "const App = () => null") == "App component"
    assert artifact_title("python", "print(1)") == "Python code"
    assert artifact_title("python", "print(1)", index=2) == "Python code 3"
    assert artifact_title("zig", "const x = 1;") == "ZIG code"
    assert artifact_title("html", "<title>  </title>") == "HTML document"
