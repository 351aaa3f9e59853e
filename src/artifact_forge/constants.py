"""Stable constants shared across storage, retention, and sandbox layers."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
METADATA_INDEX_SCHEMA_VERSION: Final[int] = 1

# On-disk layout.
DEFAULT_STORAGE_DIR: Final[PurePosixPath] = PurePosixPath("data/artifacts")
DEFAULT_INDEX_PATH: Final[PurePosixPath] = PurePosixPath("data/artifacts.sqlite")
SESSION_DIR_PREFIX: Final[str] = "session_"
ARTIFACT_DIR_PREFIX: Final[str] = "artifact_"
PUBLIC_URL_PREFIX: Final[str] = "/artifacts"
DEFAULT_SERVED_FILENAME: Final[str] = "index.html"

# Retention defaults.
BYTES_PER_GIB: Final[int] = 1024 * 1024 * 1024
DEFAULT_MAX_AGE_DAYS: Final[float] = 7.0
DEFAULT_MAX_SIZE_GB: Final[float] = 5.0
# Keeps `now - max_age_days` inside the datetime range.
MAX_RETENTION_AGE_DAYS: Final[float] = 365_000.0

# Sandbox defaults.
DEFAULT_EXECUTION_TIMEOUT_MS: Final[int] = 30_000
INTERPRETER_PROBE_TIMEOUT_SECONDS: Final[float] = 5.0
DEFAULT_INTERPRETER_CANDIDATES: Final[tuple[str, ...]] = ("python3", "python", "py")

__all__ = [
    "ARTIFACT_DIR_PREFIX",
    "BYTES_PER_GIB",
    "CONFIG_SCHEMA_VERSION",
    "DEFAULT_EXECUTION_TIMEOUT_MS",
    "DEFAULT_INDEX_PATH",
    "DEFAULT_INTERPRETER_CANDIDATES",
    "DEFAULT_MAX_AGE_DAYS",
    "DEFAULT_MAX_SIZE_GB",
    "DEFAULT_SERVED_FILENAME",
    "DEFAULT_STORAGE_DIR",
    "MAX_RETENTION_AGE_DAYS",
    "INTERPRETER_PROBE_TIMEOUT_SECONDS",
    "METADATA_INDEX_SCHEMA_VERSION",
    "PUBLIC_URL_PREFIX",
    "SESSION_DIR_PREFIX",
]
