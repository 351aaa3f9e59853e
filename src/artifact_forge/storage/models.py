"""Value types for artifact identity and file payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final

from artifact_forge.storage.content import ArtifactKind, coerce_kind
from artifact_forge.storage.languages import main_filename, normalize_language

_ID_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")
_FORBIDDEN_FILENAME_CHARS: Final[frozenset[str]] = frozenset({"/", "\\", "\x00"})


def validate_identifier(value: object, field_name: str) -> str:
    """Return ``value`` as a safe path component for session/artifact ids."""

    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise ValueError(f"{field_name} must be a string or integer")
    text = str(value).strip()
    if not _ID_PATTERN.fullmatch(text) or text in {".", ".."}:
        raise ValueError(f"{field_name} {text!r} is not a valid identifier")
    return text


def validate_filename(value: object) -> str:
    if not isinstance(value, str):
        raise ValueError("filename must be a string")
    name = value.strip()
    if not name or name in {".", ".."}:
        raise ValueError("filename must not be empty")
    if any(char in _FORBIDDEN_FILENAME_CHARS for char in name):
        raise ValueError(f"filename {name!r} must not contain path separators")
    return name


@dataclass(frozen=True, slots=True)
class ArtifactRef:
    """Identity of one artifact: ``(session_id, artifact_id)``."""

    session_id: str
    artifact_id: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "session_id", validate_identifier(self.session_id, "session_id"))
        object.__setattr__(
            self, "artifact_id", validate_identifier(self.artifact_id, "artifact_id")
        )


@dataclass(frozen=True, slots=True)
class ArtifactFile:
    """One file of an artifact. ``filename`` defaults to the language's main file."""

    content: str
    language: str = ""
    filename: str | None = None
    kind: ArtifactKind | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.content, str):
            raise ValueError("content must be a string")
        object.__setattr__(self, "language", normalize_language(self.language))
        if self.filename is not None:
            object.__setattr__(self, "filename", validate_filename(self.filename))
        if self.kind is not None:
            object.__setattr__(self, "kind", coerce_kind(self.kind))

    @property
    def resolved_filename(self) -> str:
        return self.filename if self.filename is not None else main_filename(self.language)


__all__ = [
    "ArtifactFile",
    "ArtifactRef",
    "validate_filename",
    "validate_identifier",
]
