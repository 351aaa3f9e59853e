"""Metadata index consulted by the retention engine.

The engine only needs three operations from an index: select records older
than a cutoff, select every record ordered by creation time, and delete a
record by id. ``SQLiteMetadataIndex`` is the bundled implementation; it uses
short-lived connections so it is safe to share across threads.
"""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Final, Protocol, runtime_checkable

from artifact_forge.constants import METADATA_INDEX_SCHEMA_VERSION
from artifact_forge.storage.models import validate_identifier

_TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S.%fZ"
_DEFAULT_BUSY_TIMEOUT_MS: Final[int] = 5_000

_SCHEMA_SQL: Final[tuple[str, ...]] = (
    """
    CREATE TABLE IF NOT EXISTS artifacts (
        id TEXT PRIMARY KEY,
        session_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_artifacts_created_at ON artifacts(created_at, id)",
    "CREATE INDEX IF NOT EXISTS idx_artifacts_session_id ON artifacts(session_id)",
)


class MetadataIndexError(RuntimeError):
    """Raised when the metadata index cannot be read or written."""


@dataclass(frozen=True, slots=True)
class ArtifactRecord:
    id: str
    session_id: str
    created_at: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "id", validate_identifier(self.id, "id"))
        object.__setattr__(self, "session_id", validate_identifier(self.session_id, "session_id"))
        object.__setattr__(self, "created_at", _as_utc(self.created_at))


@runtime_checkable
class MetadataIndex(Protocol):
    def select_older_than(self, cutoff: datetime) -> list[ArtifactRecord]: ...

    def select_all_ordered(self) -> list[ArtifactRecord]: ...

    def delete(self, artifact_id: str) -> None: ...


class SQLiteMetadataIndex:
    """SQLite-backed ``MetadataIndex`` with ``register``/``get`` for owners."""

    def __init__(
        self,
        path: Path | str,
        *,
        busy_timeout_ms: int = _DEFAULT_BUSY_TIMEOUT_MS,
    ) -> None:
        if busy_timeout_ms <= 0:
            raise ValueError("busy_timeout_ms must be > 0")
        self._path = Path(path).expanduser().absolute()
        self._busy_timeout_ms = busy_timeout_ms
        self._migrated = False

    @property
    def path(self) -> Path:
        return self._path

    def migrate(self) -> int:
        """Create the schema idempotently and return the schema version."""

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MetadataIndexError(f"failed to create index directory: {exc}") from exc
        with self._connection() as conn:
            for statement in _SCHEMA_SQL:
                conn.execute(statement)
            conn.execute(f"PRAGMA user_version={METADATA_INDEX_SCHEMA_VERSION}")
        self._migrated = True
        return METADATA_INDEX_SCHEMA_VERSION

    def register(self, record: ArtifactRecord) -> None:
        """Insert or replace the record for ``record.id``."""

        self._execute(
            "INSERT OR REPLACE INTO artifacts (id, session_id, created_at) VALUES (?, ?, ?)",
            (record.id, record.session_id, _format_timestamp(record.created_at)),
        )

    def get(self, artifact_id: str) -> ArtifactRecord | None:
        rows = self._query(
            "SELECT id, session_id, created_at FROM artifacts WHERE id = ?",
            (artifact_id,),
        )
        return rows[0] if rows else None

    def select_older_than(self, cutoff: datetime) -> list[ArtifactRecord]:
        return self._query(
            "SELECT id, session_id, created_at FROM artifacts "
            "WHERE created_at < ? ORDER BY created_at ASC, id ASC",
            (_format_timestamp(cutoff),),
        )

    def select_all_ordered(self) -> list[ArtifactRecord]:
        return self._query(
            "SELECT id, session_id, created_at FROM artifacts ORDER BY created_at ASC, id ASC",
            (),
        )

    def delete(self, artifact_id: str) -> None:
        self._execute("DELETE FROM artifacts WHERE id = ?", (artifact_id,))

    def close(self) -> None:
        """No-op; connections are opened per call."""

    def __enter__(self) -> SQLiteMetadataIndex:
        self.migrate()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(
                self._path,
                timeout=self._busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            raise MetadataIndexError(f"failed to open metadata index {self._path}: {exc}") from exc
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        except sqlite3.Error as exc:
            raise MetadataIndexError(f"metadata index operation failed: {exc}") from exc
        finally:
            conn.close()

    def _ensure_migrated(self) -> None:
        if not self._migrated:
            self.migrate()

    def _execute(self, sql: str, params: tuple[object, ...]) -> None:
        self._ensure_migrated()
        with self._connection() as conn:
            conn.execute(sql, params)

    def _query(self, sql: str, params: tuple[object, ...]) -> list[ArtifactRecord]:
        self._ensure_migrated()
        with self._connection() as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_row_to_record(row) for row in rows]


def _as_utc(value: datetime) -> datetime:
    if not isinstance(value, datetime):
        raise ValueError("created_at must be a datetime")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _format_timestamp(value: datetime) -> str:
    return _as_utc(value).strftime(_TIMESTAMP_FORMAT)


def _row_to_record(row: sqlite3.Row) -> ArtifactRecord:
    try:
        created_at = datetime.strptime(str(row["created_at"]), _TIMESTAMP_FORMAT)
    except ValueError as exc:
        raise MetadataIndexError(f"malformed created_at for record {row['id']!r}") from exc
    return ArtifactRecord(
        id=str(row["id"]),
        session_id=str(row["session_id"]),
        created_at=created_at.replace(tzinfo=UTC),
    )


__all__ = [
    "ArtifactRecord",
    "MetadataIndex",
    "MetadataIndexError",
    "SQLiteMetadataIndex",
]
