"""
artifact-forge — filesystem utilities

File: src/artifact_forge/utils/fs.py

Purpose
- Provide safe, minimal filesystem helpers for atomic writes, guarded deletion,
  and size accounting over artifact directories.

Functional requirements
- Atomic writes use temp files in the destination directory and replace in a single step.
- Deletion refuses paths outside the configured storage root.
- Sizes are always recomputed by walking the tree; nothing is cached.

Non-functional requirements
- Standard library only and cross-platform behavior where feasible.
"""

from __future__ import annotations

import contextlib
import os
import shutil
import tempfile
from pathlib import Path

PathLike = str | os.PathLike[str]

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB", "TB")

__all__ = [
    "atomic_write",
    "directory_size",
    "format_bytes",
    "safe_delete",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """Write ``data`` to a sibling temp file, fsync it, then ``os.replace`` it over ``path``.

    Readers see either the old file or the new one, never a partial write.
    """

    target = Path(path)
    directory = target.parent.resolve(strict=True)
    if not directory.is_dir():
        raise NotADirectoryError(f"{directory!s} is not a directory")

    payload = data.encode(encoding) if isinstance(data, str) else data
    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_name, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(temp_name)
        raise


def safe_delete(path: PathLike, root: PathLike) -> bool:
    """
    Delete ``path`` only if it is contained within ``root``.

    Returns ``False`` when the target is already absent. Symlinks are unlinked
    without traversing into their targets.
    """

    workspace = Path(root).resolve(strict=True)
    target = Path(path)
    if not target.exists() and not target.is_symlink():
        return False

    candidate = target.parent.resolve(strict=True) / target.name
    if not candidate.is_relative_to(workspace) or candidate == workspace:
        raise ValueError(f"refusing to delete path outside storage root: {target!s}")

    if target.is_symlink():
        target.unlink()
        return True

    if target.is_dir():
        shutil.rmtree(target)
        return True

    target.unlink()
    return True


def directory_size(path: PathLike) -> int:
    """Sum the sizes of all regular files under ``path``; ``0`` when absent."""

    root = Path(path)
    if not root.is_dir():
        return 0

    total = 0
    for current, _dirnames, filenames in os.walk(root):
        for name in filenames:
            try:
                stat = os.lstat(os.path.join(current, name))
            except FileNotFoundError:
                continue
            total += stat.st_size
    return total


def format_bytes(size: int) -> str:
    """Render ``size`` with binary units, e.g. ``1.5 KB``."""

    if size <= 0:
        return "0 Bytes"
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(_SIZE_UNITS) - 1:
        exponent += 1
    rendered = f"{size / (1024**exponent):.2f}".rstrip("0").rstrip(".")
    return f"{rendered} {_SIZE_UNITS[exponent]}"
