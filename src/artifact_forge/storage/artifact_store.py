"""Durable file storage for generated artifacts keyed by (session, artifact).

Layout::

    <base>/session_<session_id>/artifact_<artifact_id>/<filename>

Writes are whole-file atomic replacements; there is no versioning and no
append API. Sizes are recomputed from the filesystem on every call. The store
holds no locks: a concurrent save and delete on the same artifact must be
serialized by the caller.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from artifact_forge.constants import (
    ARTIFACT_DIR_PREFIX,
    DEFAULT_SERVED_FILENAME,
    PUBLIC_URL_PREFIX,
    SESSION_DIR_PREFIX,
)
from artifact_forge.storage.content import prepare_content
from artifact_forge.storage.languages import is_markup, main_filename
from artifact_forge.storage.linker import ProjectLinker
from artifact_forge.storage.models import (
    ArtifactFile,
    ArtifactRef,
    validate_filename,
    validate_identifier,
)
from artifact_forge.utils.fs import atomic_write, directory_size, safe_delete

_MAIN_PREFIXES = ("index.", "main.")


class ArtifactStoreError(OSError):
    """Raised when a storage operation fails on disk."""


class ArtifactNotFoundError(ArtifactStoreError):
    """Raised when reading from an artifact or file that does not exist."""


class ArtifactStore:
    """Filesystem-backed artifact storage rooted at ``base_path``."""

    def __init__(
        self,
        base_path: Path | str,
        *,
        linker: ProjectLinker | None = None,
        logger: Any | None = None,
    ) -> None:
        self._base_path = Path(base_path).expanduser().absolute()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._linker = linker if linker is not None else ProjectLinker(logger=self._logger)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def session_path(self, session_id: str) -> Path:
        session = validate_identifier(session_id, "session_id")
        return self._base_path / f"{SESSION_DIR_PREFIX}{session}"

    def artifact_path(self, session_id: str, artifact_id: str) -> Path:
        artifact = validate_identifier(artifact_id, "artifact_id")
        return self.session_path(session_id) / f"{ARTIFACT_DIR_PREFIX}{artifact}"

    def save_file(self, ref: ArtifactRef, file: ArtifactFile) -> Path:
        """Write one file into the artifact, creating its directories on demand."""

        content = self._prepare(file)
        artifact_dir = self._ensure_artifact_dir(ref)
        return self._write(ref, artifact_dir, file, content)

    def save_project(self, ref: ArtifactRef, files: Sequence[ArtifactFile]) -> list[Path]:
        """Write every file of a project and link markup assets when present."""

        if not files:
            raise ValueError("files must not be empty")
        names = [item.resolved_filename for item in files]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"duplicate filenames in project: {', '.join(duplicates)}")

        # Nothing touches disk until every file has passed content validation.
        prepared = [self._prepare(item) for item in files]
        artifact_dir = self._ensure_artifact_dir(ref)
        saved = [
            self._write(ref, artifact_dir, item, content)
            for item, content in zip(files, prepared, strict=True)
        ]

        if any(is_markup(item.language) for item in files):
            try:
                self._linker.link(artifact_dir, files)
            except OSError as exc:
                raise ArtifactStoreError(f"failed to link project assets for {ref}: {exc}") from exc
        return saved

    def read_file(self, session_id: str, artifact_id: str, filename: str | None = None) -> str:
        """Read ``filename``, or the artifact's main file when omitted."""

        if filename is None:
            target = self.resolve_main_file(session_id, artifact_id)
        else:
            target = self.artifact_path(session_id, artifact_id) / validate_filename(filename)
        try:
            return target.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(f"artifact file not found: {target}") from exc
        except OSError as exc:
            raise ArtifactStoreError(f"failed to read artifact file {target}: {exc}") from exc

    def resolve_main_file(
        self,
        session_id: str,
        artifact_id: str,
        *,
        language: str | None = None,
    ) -> Path:
        """Pick the artifact's entrypoint file.

        Preference order: the language's default main filename (when a hint is
        given), then names starting with ``index.`` or ``main.``, then any
        ``.html`` file, then the first entry of the sorted listing.
        """

        entries = self.list_files(session_id, artifact_id)
        if not entries:
            raise ArtifactNotFoundError(f"no files found in artifact {session_id}/{artifact_id}")

        artifact_dir = self.artifact_path(session_id, artifact_id)
        if language:
            preferred = main_filename(language)
            if preferred in entries:
                return artifact_dir / preferred
        for name in entries:
            if name.startswith(_MAIN_PREFIXES):
                return artifact_dir / name
        for name in entries:
            if name.endswith(".html"):
                return artifact_dir / name
        return artifact_dir / entries[0]

    def list_files(self, session_id: str, artifact_id: str) -> list[str]:
        artifact_dir = self.artifact_path(session_id, artifact_id)
        try:
            return sorted(entry.name for entry in artifact_dir.iterdir() if entry.is_file())
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(
                f"artifact not found: {session_id}/{artifact_id}"
            ) from exc
        except OSError as exc:
            raise ArtifactStoreError(f"failed to list artifact {artifact_dir}: {exc}") from exc

    def exists(self, session_id: str, artifact_id: str) -> bool:
        try:
            return self.artifact_path(session_id, artifact_id).is_dir()
        except (OSError, ValueError):
            return False

    def delete_artifact(
        self,
        session_id: str,
        artifact_id: str,
        *,
        prune_session: bool = True,
    ) -> bool:
        """Remove the artifact recursively; absent artifacts are not an error.

        With ``prune_session`` the session directory is removed as well once it
        holds no artifacts. Returns whether the artifact directory existed.
        """

        artifact_dir = self.artifact_path(session_id, artifact_id)
        removed = self._delete(artifact_dir)
        if removed:
            self._logger.info("artifact_deleted", session_id=session_id, artifact_id=artifact_id)
        if prune_session:
            self.prune_session(session_id)
        return removed

    def delete_session(self, session_id: str) -> bool:
        removed = self._delete(self.session_path(session_id))
        if removed:
            self._logger.info("session_deleted", session_id=session_id)
        return removed

    def prune_session(self, session_id: str) -> bool:
        """Delete the session directory when it has no artifact subdirectories."""

        session_dir = self.session_path(session_id)
        if not session_dir.is_dir() or self.iter_artifacts(session_id):
            return False
        return self._delete(session_dir)

    def iter_sessions(self) -> list[str]:
        return _prefixed_children(self._base_path, SESSION_DIR_PREFIX)

    def iter_artifacts(self, session_id: str) -> list[str]:
        return _prefixed_children(self.session_path(session_id), ARTIFACT_DIR_PREFIX)

    def artifact_size(self, session_id: str, artifact_id: str) -> int:
        return directory_size(self.artifact_path(session_id, artifact_id))

    def total_size(self) -> int:
        return directory_size(self._base_path)

    def artifact_modified_at(self, session_id: str, artifact_id: str) -> datetime:
        artifact_dir = self.artifact_path(session_id, artifact_id)
        try:
            mtime = artifact_dir.stat().st_mtime
        except FileNotFoundError as exc:
            raise ArtifactNotFoundError(
                f"artifact not found: {session_id}/{artifact_id}"
            ) from exc
        return datetime.fromtimestamp(mtime, tz=UTC)

    @staticmethod
    def artifact_url(
        session_id: str,
        artifact_id: str,
        filename: str = DEFAULT_SERVED_FILENAME,
    ) -> str:
        return f"{PUBLIC_URL_PREFIX}/{session_id}/{artifact_id}/{filename}"

    def _ensure_artifact_dir(self, ref: ArtifactRef) -> Path:
        artifact_dir = self.artifact_path(ref.session_id, ref.artifact_id)
        try:
            artifact_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ArtifactStoreError(
                f"failed to create artifact directory {artifact_dir}: {exc}"
            ) from exc
        return artifact_dir

    def _prepare(self, file: ArtifactFile) -> str:
        if file.kind is None:
            return file.content
        return prepare_content(file.kind, file.content, logger=self._logger)

    def _write(
        self, ref: ArtifactRef, artifact_dir: Path, file: ArtifactFile, content: str
    ) -> Path:
        target = artifact_dir / file.resolved_filename
        try:
            atomic_write(target, content)
        except OSError as exc:
            raise ArtifactStoreError(f"failed to save artifact file {target}: {exc}") from exc

        self._logger.info(
            "artifact_saved",
            session_id=ref.session_id,
            artifact_id=ref.artifact_id,
            filename=file.resolved_filename,
            language=file.language or None,
            size=len(content.encode("utf-8")),
        )
        return target

    def _delete(self, path: Path) -> bool:
        if not self._base_path.is_dir():
            return False
        try:
            return safe_delete(path, self._base_path)
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise ArtifactStoreError(f"failed to delete {path}: {exc}") from exc


def _prefixed_children(parent: Path, prefix: str) -> list[str]:
    try:
        entries = list(parent.iterdir())
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise ArtifactStoreError(f"failed to list {parent}: {exc}") from exc
    return sorted(
        entry.name[len(prefix) :]
        for entry in entries
        if entry.name.startswith(prefix) and entry.is_dir() and len(entry.name) > len(prefix)
    )


__all__ = [
    "ArtifactNotFoundError",
    "ArtifactStore",
    "ArtifactStoreError",
]
