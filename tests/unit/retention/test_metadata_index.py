"""
artifact-forge — unit tests for the SQLite metadata index

File: tests/unit/retention/test_metadata_index.py

Purpose
- Validate schema migration, record round trips, ordering, and the strict
  ``older than`` boundary.
"""

from __future__ import annotations

import sqlite3
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest

from artifact_forge.retention.metadata_index import (
    ArtifactRecord,
    MetadataIndex,
    MetadataIndexError,
    SQLiteMetadataIndex,
)

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)


def _index(tmp_path: Path) -> SQLiteMetadataIndex:
    return SQLiteMetadataIndex(tmp_path / "state" / "artifacts.sqlite")


def test_migrate_is_idempotent_and_sets_user_version(tmp_path: Path) -> None:
    index = _index(tmp_path)

    assert index.migrate() == 1
    assert index.migrate() == 1

    with sqlite3.connect(index.path) as conn:
        assert conn.execute("PRAGMA user_version").fetchone()[0] == 1


def test_register_get_and_replace(tmp_path: Path) -> None:
    with _index(tmp_path) as index:
        index.register(ArtifactRecord(id="a1", session_id="s1", created_at=T0))
        assert index.get("a1") == ArtifactRecord(id="a1", session_id="s1", created_at=T0)

        later = T0 + timedelta(hours=1)
        index.register(ArtifactRecord(id="a1", session_id="s2", created_at=later))
        assert index.get("a1") == ArtifactRecord(id="a1", session_id="s2", created_at=later)
        assert index.get("missing") is None


def test_select_all_ordered_breaks_ties_by_id(tmp_path: Path) -> None:
    index = _index(tmp_path)
    index.register(ArtifactRecord(id="c", session_id="s1", created_at=T0))
    index.register(ArtifactRecord(id="b", session_id="s1", created_at=T0 + timedelta(days=1)))
    index.register(ArtifactRecord(id="a", session_id="s2", created_at=T0))

    assert [record.id for record in index.select_all_ordered()] == ["a", "c", "b"]


def test_select_older_than_is_strict(tmp_path: Path) -> None:
    index = _index(tmp_path)
    index.register(ArtifactRecord(id="old", session_id="s1", created_at=T0 - timedelta(seconds=1)))
    index.register(ArtifactRecord(id="edge", session_id="s1", created_at=T0))
    index.register(ArtifactRecord(id="new", session_id="s1", created_at=T0 + timedelta(days=1)))

    assert [record.id for record in index.select_older_than(T0)] == ["old"]


def test_timestamps_are_normalized_to_utc(tmp_path: Path) -> None:
    index = _index(tmp_path)
    plus_two = timezone(timedelta(hours=2))
    noon_utc = datetime(2026, 1, 1, 14, tzinfo=plus_two)
    index.register(ArtifactRecord(id="tz", session_id="s1", created_at=noon_utc))
    index.register(ArtifactRecord(id="naive", session_id="s1", created_at=datetime(2026, 1, 1)))

    tz_record = index.get("tz")
    naive_record = index.get("naive")
    assert tz_record is not None
    assert naive_record is not None
    assert tz_record.created_at == T0
    assert naive_record.created_at == datetime(2026, 1, 1, tzinfo=UTC)


def test_delete_is_idempotent(tmp_path: Path) -> None:
    index = _index(tmp_path)
    index.register(ArtifactRecord(id="a1", session_id="s1", created_at=T0))

    index.delete("a1")
    index.delete("a1")

    assert index.select_all_ordered() == []


def test_sqlite_index_satisfies_protocol(tmp_path: Path) -> None:
    assert isinstance(_index(tmp_path), MetadataIndex)


def test_record_validation() -> None:
    with pytest.raises(ValueError):
        ArtifactRecord(id="../x", session_id="s1", created_at=T0)
    with pytest.raises(ValueError, match="created_at"):
        ArtifactRecord(id="a1", session_id="s1", created_at="2026-01-01")  # type: ignore[arg-type]


def test_malformed_rows_raise_index_error(tmp_path: Path) -> None:
    index = _index(tmp_path)
    index.migrate()
    with sqlite3.connect(index.path) as conn:
        conn.execute(
            "INSERT INTO artifacts (id, session_id, created_at) VALUES ('a1', 's1', 'yesterday')"
        )

    with pytest.raises(MetadataIndexError, match="malformed created_at"):
        index.select_all_ordered()


def test_unopenable_index_raises_index_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("file, not a directory", encoding="utf-8")
    index = SQLiteMetadataIndex(blocker / "artifacts.sqlite")

    with pytest.raises(MetadataIndexError):
        index.select_all_ordered()


def test_busy_timeout_must_be_positive(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SQLiteMetadataIndex(tmp_path / "x.sqlite", busy_timeout_ms=0)
