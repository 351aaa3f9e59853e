"""
artifact-forge — unit tests for language conventions

File: tests/unit/storage/test_languages.py
"""

from __future__ import annotations

import pytest

from artifact_forge.storage.languages import (
    file_extension,
    is_markup,
    is_script,
    is_stylesheet,
    language_for_filename,
    main_filename,
    normalize_language,
)


@pytest.mark.parametrize(
    ("language", "expected"),
    [
        ("html", "index.html"),
        ("javascript", "script.js"),
        ("typescript", "script.ts"),
        ("python", "main.py"),
        ("java", "Main.java"),
        ("php", "index.php"),
        ("css", "main.css"),
        ("markdown", "main.md"),
        ("cobol", "main.txt"),
        ("", "main.txt"),
    ],
)
def test_main_filename(language: str, expected: str) -> None:
    assert main_filename(language) == expected


def test_aliases_fold_onto_canonical_tags() -> None:
    assert normalize_language(" JS ") == "javascript"
    assert normalize_language("py") == "python"
    assert normalize_language(None) == ""
    assert file_extension("ts") == ".ts"
    assert main_filename("py") == "main.py"


def test_unknown_language_uses_generic_extension() -> None:
    assert file_extension("brainfuck") == ".txt"


@pytest.mark.parametrize(
    ("filename", "expected"),
    [
        ("index.html", "html"),
        ("page.HTM", "html"),
        ("style.css", "css"),
        ("app.js", "javascript"),
        ("main.py", "python"),
        ("config.yml", "yaml"),
        ("README", ""),
        ("archive.tar.gz", ""),
    ],
)
def test_language_for_filename(filename: str, expected: str) -> None:
    assert language_for_filename(filename) == expected


def test_asset_roles() -> None:
    assert is_markup("HTML")
    assert is_stylesheet("css")
    assert is_script("js")
    assert not is_script("typescript")
    assert not is_markup("markdown")
