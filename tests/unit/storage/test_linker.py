"""
artifact-forge — unit tests for project asset linking

File: tests/unit/storage/test_linker.py

Purpose
- Validate stylesheet/script injection into markup and its idempotence.
"""

from __future__ import annotations

from pathlib import Path

from hypothesis import given
from hypothesis import strategies as st

from artifact_forge.storage.linker import (
    ProjectLinker,
    inject_asset_links,
    script_tag,
    stylesheet_tag,
)
from artifact_forge.storage.models import ArtifactFile

_PAGE = "<html><head><title>T</title></head><body><p>hi</p></body></html>"


def test_tags_are_injected_before_closing_tags() -> None:
    linked = inject_asset_links(_PAGE, stylesheets=["style.css"], scripts=["script.js"])

    head_close = linked.index("</head>")
    body_close = linked.index("</body>")
    assert linked.index(stylesheet_tag("style.css")) < head_close
    assert head_close < linked.index(script_tag("script.js")) < body_close


def test_fragment_without_head_or_body_gets_prepended_and_appended_tags() -> None:
    linked = inject_asset_links("<p>x</p>", stylesheets=["a.css"], scripts=["b.js"])

    assert linked.startswith(stylesheet_tag("a.css") + "\n")
    assert linked.endswith("\n" + script_tag("b.js"))


def test_existing_tags_are_not_duplicated() -> None:
    once = inject_asset_links(_PAGE, stylesheets=["style.css"], scripts=["script.js"])
    twice = inject_asset_links(once, stylesheets=["style.css"], scripts=["script.js"])

    assert twice == once
    assert twice.count(stylesheet_tag("style.css")) == 1
    assert twice.count(script_tag("script.js")) == 1


@given(
    body=st.text(alphabet=st.characters(blacklist_characters="<>"), max_size=40),
    styles=st.lists(st.sampled_from(["a.css", "b.css", "c.css"]), max_size=4),
)
def test_linking_is_idempotent(body: str, styles: list[str]) -> None:
    document = f"<html><head></head><body>{body}</body></html>"
    once = inject_asset_links(document, stylesheets=styles, scripts=["app.js"])

    assert inject_asset_links(once, stylesheets=styles, scripts=["app.js"]) == once
    for name in set(styles):
        assert once.count(stylesheet_tag(name)) == 1


def test_project_linker_rewrites_markup_file_on_disk(tmp_path: Path) -> None:
    files = [
        ArtifactFile(content=_PAGE, language="html"),
        ArtifactFile(content="body{}", language="css", filename="style.css"),
        ArtifactFile(content="console.log(1)", language="javascript"),
    ]
    for item in files:
        (tmp_path / item.resolved_filename).write_text(item.content, encoding="utf-8")

    target = ProjectLinker().link(tmp_path, files)

    assert target == tmp_path / "index.html"
    html = target.read_text(encoding="utf-8")
    assert stylesheet_tag("style.css") in html
    assert script_tag("script.js") in html


def test_project_linker_without_markup_is_a_no_op(tmp_path: Path) -> None:
    files = [ArtifactFile(content="print(1)", language="python")]

    assert ProjectLinker().link(tmp_path, files) is None
