"""Language tag conventions: file extensions and default main filenames."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

GENERIC_EXTENSION: Final[str] = ".txt"

LANGUAGE_EXTENSIONS: Final[dict[str, str]] = {
    "html": ".html",
    "css": ".css",
    "javascript": ".js",
    "typescript": ".ts",
    "python": ".py",
    "java": ".java",
    "cpp": ".cpp",
    "c": ".c",
    "go": ".go",
    "rust": ".rs",
    "php": ".php",
    "ruby": ".rb",
    "json": ".json",
    "xml": ".xml",
    "markdown": ".md",
    "yaml": ".yml",
    "sql": ".sql",
    "shell": ".sh",
    "powershell": ".ps1",
    "jsx": ".jsx",
    "tsx": ".tsx",
    "vue": ".vue",
    "svelte": ".svelte",
}

MAIN_FILENAMES: Final[dict[str, str]] = {
    "html": "index.html",
    "javascript": "script.js",
    "typescript": "script.ts",
    "python": "main.py",
    "java": "Main.java",
    "cpp": "main.cpp",
    "c": "main.c",
    "go": "main.go",
    "rust": "main.rs",
    "php": "index.php",
    "ruby": "main.rb",
}

# Common aliases emitted by markdown fences.
LANGUAGE_ALIASES: Final[dict[str, str]] = {
    "js": "javascript",
    "ts": "typescript",
    "py": "python",
    "htm": "html",
    "xhtml": "html",
    "md": "markdown",
    "yml": "yaml",
    "sh": "shell",
    "bash": "shell",
    "c++": "cpp",
}

MARKUP_LANGUAGES: Final[frozenset[str]] = frozenset({"html"})
STYLESHEET_LANGUAGES: Final[frozenset[str]] = frozenset({"css"})
SCRIPT_LANGUAGES: Final[frozenset[str]] = frozenset({"javascript"})


def normalize_language(language: str | None) -> str:
    """Lower-case ``language`` and fold known aliases onto canonical tags."""

    if language is None:
        return ""
    lowered = language.strip().lower()
    return LANGUAGE_ALIASES.get(lowered, lowered)


def file_extension(language: str | None) -> str:
    return LANGUAGE_EXTENSIONS.get(normalize_language(language), GENERIC_EXTENSION)


def main_filename(language: str | None) -> str:
    """Default entrypoint name for ``language``; ``main<ext>`` when not curated."""

    normalized = normalize_language(language)
    return MAIN_FILENAMES.get(normalized, f"main{file_extension(normalized)}")


def language_for_filename(filename: str) -> str:
    """Best-effort language tag from a file suffix; empty when unknown."""

    suffix = PurePosixPath(filename).suffix.lower()
    if not suffix:
        return ""
    for language, extension in LANGUAGE_EXTENSIONS.items():
        if extension == suffix:
            return language
    return normalize_language(suffix[1:]) if suffix[1:] in LANGUAGE_ALIASES else ""


def is_markup(language: str | None) -> bool:
    return normalize_language(language) in MARKUP_LANGUAGES


def is_stylesheet(language: str | None) -> bool:
    return normalize_language(language) in STYLESHEET_LANGUAGES


def is_script(language: str | None) -> bool:
    return normalize_language(language) in SCRIPT_LANGUAGES


__all__ = [
    "GENERIC_EXTENSION",
    "LANGUAGE_ALIASES",
    "LANGUAGE_EXTENSIONS",
    "MAIN_FILENAMES",
    "file_extension",
    "is_markup",
    "is_script",
    "is_stylesheet",
    "language_for_filename",
    "main_filename",
    "normalize_language",
]
