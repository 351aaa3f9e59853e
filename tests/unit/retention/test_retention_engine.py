"""
artifact-forge — unit tests for the retention engine

File: tests/unit/retention/test_retention_engine.py

Purpose
- Validate age eviction, empty-session pruning, oldest-first quota eviction,
  dry-run parity, per-item error collection, and status reporting.

Functional requirements
- Deterministic: a fixed clock drives every age decision.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from artifact_forge.constants import BYTES_PER_GIB
from artifact_forge.retention import (
    ArtifactRecord,
    MetadataIndexError,
    RetentionEngine,
    RetentionPolicy,
    RetentionSetupError,
    SQLiteMetadataIndex,
    StoreStatus,
    recommendations,
)
from artifact_forge.storage import ArtifactFile, ArtifactRef, ArtifactStore

NOW = datetime(2026, 3, 1, 9, 30, tzinfo=UTC)


class _FailingDeleteIndex:
    """Index wrapper whose ``delete`` fails for selected ids."""

    def __init__(self, inner: SQLiteMetadataIndex, failing: set[str]) -> None:
        self._inner = inner
        self._failing = failing

    def select_older_than(self, cutoff: datetime) -> list[ArtifactRecord]:
        return self._inner.select_older_than(cutoff)

    def select_all_ordered(self) -> list[ArtifactRecord]:
        return self._inner.select_all_ordered()

    def delete(self, artifact_id: str) -> None:
        if artifact_id in self._failing:
            raise MetadataIndexError(f"cannot delete {artifact_id}")
        self._inner.delete(artifact_id)


class _UnreachableIndex:
    def select_older_than(self, cutoff: datetime) -> list[ArtifactRecord]:
        raise MetadataIndexError("database is locked")

    def select_all_ordered(self) -> list[ArtifactRecord]:
        raise MetadataIndexError("database is locked")

    def delete(self, artifact_id: str) -> None:
        raise MetadataIndexError("database is locked")


def _env(tmp_path: Path) -> tuple[ArtifactStore, SQLiteMetadataIndex, RetentionEngine]:
    store = ArtifactStore(tmp_path / "artifacts")
    index = SQLiteMetadataIndex(tmp_path / "artifacts.sqlite")
    engine = RetentionEngine(store, index, clock=lambda: NOW)
    return store, index, engine


def _seed(
    store: ArtifactStore,
    index: SQLiteMetadataIndex,
    session_id: str,
    artifact_id: str,
    *,
    age: timedelta,
    size: int = 100,
) -> None:
    store.save_file(
        ArtifactRef(session_id, artifact_id),
        ArtifactFile(content="x" * size, language="python"),
    )
    index.register(
        ArtifactRecord(id=artifact_id, session_id=session_id, created_at=NOW - age)
    )


def test_age_phase_deletes_only_expired_artifacts(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "old", age=timedelta(days=10), size=120)
    _seed(store, index, "s1", "fresh", age=timedelta(days=1))
    _seed(store, index, "s2", "edge", age=timedelta(days=7))

    result = engine.sweep(RetentionPolicy(max_age_days=7))

    assert result.deleted_artifacts == 1
    assert result.deleted_sessions == 0
    assert result.freed_space_bytes == 120
    assert result.errors == []
    assert not store.exists("s1", "old")
    assert store.exists("s1", "fresh")
    assert store.exists("s2", "edge")
    assert index.get("old") is None


def test_expired_last_artifact_takes_its_session_with_it(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "gone", "a1", age=timedelta(days=30))
    _seed(store, index, "kept", "a2", age=timedelta(hours=1))

    result = engine.sweep(RetentionPolicy(max_age_days=7))

    assert result.deleted_artifacts == 1
    assert result.deleted_sessions == 1
    assert store.iter_sessions() == ["kept"]


def test_empty_sessions_are_pruned_without_expired_artifacts(tmp_path: Path) -> None:
    store, _index, engine = _env(tmp_path)
    store.session_path("empty").mkdir(parents=True)

    result = engine.sweep(RetentionPolicy(max_age_days=7))

    assert result.deleted_artifacts == 0
    assert result.deleted_sessions == 1
    assert not store.session_path("empty").exists()


def test_sweep_is_idempotent(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "old", age=timedelta(days=10))
    _seed(store, index, "s1", "fresh", age=timedelta(days=1))

    first = engine.sweep(RetentionPolicy(max_age_days=7))
    second = engine.sweep(RetentionPolicy(max_age_days=7))

    assert first.deleted_artifacts == 1
    assert (second.deleted_artifacts, second.deleted_sessions, second.freed_space_bytes) == (
        0,
        0,
        0,
    )


def test_quota_phase_evicts_oldest_first_until_under_quota(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "oldest", age=timedelta(hours=3))
    _seed(store, index, "s2", "middle", age=timedelta(hours=2))
    _seed(store, index, "s1", "newest", age=timedelta(hours=1))

    result = engine.sweep(RetentionPolicy(max_age_days=7, max_total_bytes=150))

    assert result.deleted_artifacts == 2
    assert result.freed_space_bytes == 200
    assert result.deleted_sessions == 1
    assert store.exists("s1", "newest")
    assert not store.exists("s1", "oldest")
    assert not store.session_path("s2").exists()
    assert store.total_size() <= 150


def test_zero_quota_removes_everything(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "a1", age=timedelta(hours=2))
    _seed(store, index, "s2", "a2", age=timedelta(hours=1))

    result = engine.sweep(RetentionPolicy.from_gb(max_age_days=7, max_size_gb=0))

    assert result.deleted_artifacts == 2
    assert result.deleted_sessions == 2
    assert store.iter_sessions() == []
    assert index.select_all_ordered() == []


def test_dry_run_reports_the_same_counts_without_mutating(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "expired", age=timedelta(days=9), size=80)
    _seed(store, index, "s2", "big", age=timedelta(hours=5), size=300)
    _seed(store, index, "s2", "small", age=timedelta(hours=1), size=40)
    store.session_path("empty").mkdir(parents=True)
    before_records = index.select_all_ordered()
    policy = RetentionPolicy(max_age_days=7, max_total_bytes=100)

    planned = engine.sweep(RetentionPolicy(max_age_days=7, max_total_bytes=100, dry_run=True))

    assert planned.dry_run is True
    assert store.exists("s1", "expired")
    assert store.exists("s2", "big")
    assert store.session_path("empty").is_dir()
    assert index.select_all_ordered() == before_records

    actual = engine.sweep(policy)

    assert actual.dry_run is False
    assert (planned.deleted_artifacts, planned.deleted_sessions, planned.freed_space_bytes) == (
        actual.deleted_artifacts,
        actual.deleted_sessions,
        actual.freed_space_bytes,
    )
    assert actual.deleted_artifacts == 2
    assert actual.deleted_sessions == 2
    assert store.exists("s2", "small")


@settings(max_examples=15, deadline=None)
@given(
    ages=st.lists(st.integers(min_value=0, max_value=20), min_size=1, max_size=6),
    quota=st.integers(min_value=0, max_value=700),
)
def test_dry_run_parity_property(
    tmp_path_factory: pytest.TempPathFactory,
    ages: list[int],
    quota: int,
) -> None:
    store, index, engine = _env(tmp_path_factory.mktemp("parity"))
    for position, days in enumerate(ages):
        _seed(
            store,
            index,
            f"s{position % 3}",
            f"a{position}",
            age=timedelta(days=days, minutes=position),
            size=100,
        )
    policy = {"max_age_days": 7.0, "max_total_bytes": quota}

    planned = engine.sweep(RetentionPolicy(**policy, dry_run=True))
    actual = engine.sweep(RetentionPolicy(**policy))

    assert planned.to_dict() | {"dry_run": False} == actual.to_dict()


def test_index_failures_are_collected_and_sweep_continues(tmp_path: Path) -> None:
    store, index, _engine = _env(tmp_path)
    _seed(store, index, "s1", "a1", age=timedelta(days=10))
    _seed(store, index, "s1", "a2", age=timedelta(days=9))
    engine = RetentionEngine(store, _FailingDeleteIndex(index, {"a1"}), clock=lambda: NOW)

    result = engine.sweep(RetentionPolicy(max_age_days=7))

    assert result.deleted_artifacts == 1
    assert len(result.errors) == 1
    assert "s1/a1" in result.errors[0]
    assert index.get("a2") is None


def test_unreachable_index_raises_setup_error(tmp_path: Path) -> None:
    engine = RetentionEngine(ArtifactStore(tmp_path), _UnreachableIndex(), clock=lambda: NOW)

    with pytest.raises(RetentionSetupError, match="metadata index unavailable"):
        engine.sweep()
    with pytest.raises(RetentionSetupError):
        engine.status()


def test_sweep_session_removes_records_and_directory(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "a1", age=timedelta(hours=1), size=10)
    _seed(store, index, "s1", "a2", age=timedelta(hours=2), size=20)
    _seed(store, index, "s2", "a3", age=timedelta(hours=3))

    planned = engine.sweep_session("s1", dry_run=True)
    assert store.session_path("s1").is_dir()

    result = engine.sweep_session("s1")

    assert (planned.deleted_artifacts, planned.deleted_sessions) == (2, 1)
    assert (result.deleted_artifacts, result.deleted_sessions) == (2, 1)
    assert result.freed_space_bytes == 30
    assert not store.session_path("s1").exists()
    assert [record.id for record in index.select_all_ordered()] == ["a3"]


def test_status_and_recommendations(tmp_path: Path) -> None:
    store, index, engine = _env(tmp_path)
    _seed(store, index, "s1", "a1", age=timedelta(days=2), size=10)
    _seed(store, index, "s2", "a2", age=timedelta(days=1), size=20)

    status = engine.status()

    assert status.total_artifacts == 2
    assert status.total_sessions == 2
    assert status.total_size_bytes == 30
    assert status.oldest_artifact_at == NOW - timedelta(days=2)
    assert status.newest_artifact_at == NOW - timedelta(days=1)
    assert status.to_dict()["total_size"] == "30 Bytes"
    assert recommendations(status, now=NOW) == ["Artifact storage is healthy."]


def test_recommendations_flag_size_count_and_age() -> None:
    status = StoreStatus(
        total_artifacts=1001,
        total_sessions=4,
        total_size_bytes=4 * BYTES_PER_GIB,
        oldest_artifact_at=NOW - timedelta(days=45),
        newest_artifact_at=NOW,
    )

    messages = recommendations(status, now=NOW)

    assert len(messages) == 3
    assert "4 GB" in messages[0]
    assert "1001 artifacts" in messages[1]
    assert "45 days" in messages[2]


def test_policy_validation() -> None:
    with pytest.raises(ValueError):
        RetentionPolicy(max_age_days=-1)
    with pytest.raises(ValueError, match="max_age_days"):
        RetentionPolicy(max_age_days=1e12)
    with pytest.raises(ValueError):
        RetentionPolicy(max_age_days=float("nan"))
    with pytest.raises(ValueError):
        RetentionPolicy.from_gb(max_size_gb=-0.5)
    assert RetentionPolicy.from_gb(max_size_gb=1.5).max_total_bytes == int(1.5 * BYTES_PER_GIB)
