"""Utility exports for filesystem helpers."""

from artifact_forge.utils.fs import (
    atomic_write,
    directory_size,
    format_bytes,
    safe_delete,
)

__all__ = [
    "atomic_write",
    "directory_size",
    "format_bytes",
    "safe_delete",
]
