"""Inject stylesheet and script references into a stored markup project."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Any

import structlog

from artifact_forge.storage.languages import is_markup, is_script, is_stylesheet
from artifact_forge.storage.models import ArtifactFile
from artifact_forge.utils.fs import atomic_write

_HEAD_CLOSE = "</head>"
_BODY_CLOSE = "</body>"


def stylesheet_tag(filename: str) -> str:
    return f'<link rel="stylesheet" href="./{filename}">'


def script_tag(filename: str) -> str:
    return f'<script src="./{filename}"></script>'


def inject_asset_links(
    document: str,
    *,
    stylesheets: Sequence[str] = (),
    scripts: Sequence[str] = (),
) -> str:
    """Return ``document`` with one reference per asset, never duplicating a tag."""

    linked = document
    for name in stylesheets:
        tag = stylesheet_tag(name)
        if tag in linked:
            continue
        if _HEAD_CLOSE in linked:
            linked = linked.replace(_HEAD_CLOSE, f"  {tag}\n{_HEAD_CLOSE}", 1)
        else:
            linked = f"{tag}\n{linked}"

    for name in scripts:
        tag = script_tag(name)
        if tag in linked:
            continue
        if _BODY_CLOSE in linked:
            linked = linked.replace(_BODY_CLOSE, f"  {tag}\n{_BODY_CLOSE}", 1)
        else:
            linked = f"{linked}\n{tag}"

    return linked


class ProjectLinker:
    """Rewrite the markup file of a multi-file project so its assets load."""

    def __init__(self, *, logger: Any | None = None) -> None:
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def link(self, artifact_dir: Path, files: Sequence[ArtifactFile]) -> Path | None:
        """Link the first markup file in ``files``; returns its path or ``None``.

        The document is read back from disk so an already linked file stays
        unchanged when the same project is saved again.
        """

        markup = next((item for item in files if is_markup(item.language)), None)
        if markup is None:
            return None

        stylesheets = _unique(
            item.resolved_filename for item in files if is_stylesheet(item.language)
        )
        scripts = _unique(item.resolved_filename for item in files if is_script(item.language))

        target = artifact_dir / markup.resolved_filename
        current = target.read_text(encoding="utf-8")
        linked = inject_asset_links(current, stylesheets=stylesheets, scripts=scripts)
        if linked != current:
            atomic_write(target, linked)

        self._logger.info(
            "project_linked",
            markup=markup.resolved_filename,
            stylesheets=list(stylesheets),
            scripts=list(scripts),
            changed=linked != current,
        )
        return target


def _unique(names: Iterable[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for name in names:
        seen.setdefault(name, None)
    return tuple(seen)


__all__ = [
    "ProjectLinker",
    "inject_asset_links",
    "script_tag",
    "stylesheet_tag",
]
