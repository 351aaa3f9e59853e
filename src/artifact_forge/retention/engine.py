"""
artifact-forge — retention engine

File: src/artifact_forge/retention/engine.py

Purpose
- Reclaim artifact storage under age and quota pressure using the metadata
  index for ordering and the artifact store for sizing and deletion.

Functional requirements
- Three phases per sweep: age, empty-session, quota.
- Per-item failures are collected into ``SweepResult.errors``; only an
  unreachable index raises (``RetentionSetupError``).
- Dry runs perform the same accounting as a live run without mutating the
  filesystem or the index.
- Sizes come from directory walks on every check.

Non-functional requirements
- Assumes no artifact is written or executed while a sweep is running.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any, Final

import structlog

from artifact_forge.constants import (
    BYTES_PER_GIB,
    DEFAULT_MAX_AGE_DAYS,
    DEFAULT_MAX_SIZE_GB,
    MAX_RETENTION_AGE_DAYS,
)
from artifact_forge.retention.metadata_index import (
    ArtifactRecord,
    MetadataIndex,
    MetadataIndexError,
)
from artifact_forge.storage.artifact_store import ArtifactStore
from artifact_forge.utils.fs import format_bytes

Clock = Callable[[], datetime]

_RECOMMEND_SIZE_BYTES: Final[int] = 3 * BYTES_PER_GIB
_RECOMMEND_MAX_ARTIFACTS: Final[int] = 1000
_RECOMMEND_MAX_AGE: Final[timedelta] = timedelta(days=30)
_ITEM_ERRORS: Final[tuple[type[Exception], ...]] = (OSError, MetadataIndexError, ValueError)


class RetentionSetupError(RuntimeError):
    """Raised when a sweep cannot start, e.g. the metadata index is unreachable."""


@dataclass(frozen=True, slots=True)
class RetentionPolicy:
    max_age_days: float = DEFAULT_MAX_AGE_DAYS
    max_total_bytes: int = int(DEFAULT_MAX_SIZE_GB * BYTES_PER_GIB)
    dry_run: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.max_age_days <= MAX_RETENTION_AGE_DAYS:
            raise ValueError(f"max_age_days must be between 0 and {MAX_RETENTION_AGE_DAYS:g}")
        if self.max_total_bytes < 0:
            raise ValueError("max_total_bytes must be >= 0")

    @classmethod
    def from_gb(
        cls,
        *,
        max_age_days: float = DEFAULT_MAX_AGE_DAYS,
        max_size_gb: float = DEFAULT_MAX_SIZE_GB,
        dry_run: bool = False,
    ) -> RetentionPolicy:
        if max_size_gb < 0:
            raise ValueError("max_size_gb must be >= 0")
        return cls(
            max_age_days=max_age_days,
            max_total_bytes=int(max_size_gb * BYTES_PER_GIB),
            dry_run=dry_run,
        )


@dataclass(slots=True)
class SweepResult:
    deleted_artifacts: int = 0
    deleted_sessions: int = 0
    freed_space_bytes: int = 0
    errors: list[str] = field(default_factory=list)
    dry_run: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "deleted_artifacts": self.deleted_artifacts,
            "deleted_sessions": self.deleted_sessions,
            "freed_space_bytes": self.freed_space_bytes,
            "freed_space": format_bytes(self.freed_space_bytes),
            "errors": list(self.errors),
            "dry_run": self.dry_run,
        }


@dataclass(frozen=True, slots=True)
class StoreStatus:
    total_artifacts: int
    total_sessions: int
    total_size_bytes: int
    oldest_artifact_at: datetime | None
    newest_artifact_at: datetime | None

    def to_dict(self) -> dict[str, object]:
        return {
            "total_artifacts": self.total_artifacts,
            "total_sessions": self.total_sessions,
            "total_size_bytes": self.total_size_bytes,
            "total_size": format_bytes(self.total_size_bytes),
            "oldest_artifact_at": _isoformat(self.oldest_artifact_at),
            "newest_artifact_at": _isoformat(self.newest_artifact_at),
        }


class RetentionEngine:
    """Age- and quota-based eviction over an ``ArtifactStore``."""

    def __init__(
        self,
        store: ArtifactStore,
        index: MetadataIndex,
        *,
        clock: Clock | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._index = index
        self._clock = clock if clock is not None else _utc_now
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def sweep(self, policy: RetentionPolicy | None = None) -> SweepResult:
        """Run the age, empty-session and quota phases in order."""

        policy = policy if policy is not None else RetentionPolicy()
        sweep = _Sweep(self._store, self._index, self._logger, dry_run=policy.dry_run)
        cutoff = self._clock() - timedelta(days=policy.max_age_days)

        expired = self._select(lambda: self._index.select_older_than(cutoff))
        for record in expired:
            sweep.remove(record)
        self._phase_completed("age", sweep.result, cutoff=cutoff.isoformat())

        sweep.prune_sessions()
        self._phase_completed("empty_sessions", sweep.result)

        total = self._store.total_size()
        if policy.dry_run:
            total -= sweep.result.freed_space_bytes
        if total > policy.max_total_bytes:
            candidates = self._select(self._index.select_all_ordered)
            for record in candidates:
                if total <= policy.max_total_bytes:
                    break
                if sweep.is_removed(record):
                    continue
                total -= sweep.remove(record)
            sweep.prune_sessions()
        self._phase_completed(
            "quota",
            sweep.result,
            remaining_bytes=max(total, 0),
            max_total_bytes=policy.max_total_bytes,
        )
        return sweep.result

    def sweep_session(self, session_id: str, *, dry_run: bool = False) -> SweepResult:
        """Delete every indexed artifact of ``session_id`` and its directory."""

        sweep = _Sweep(self._store, self._index, self._logger, dry_run=dry_run)
        records = self._select(self._index.select_all_ordered)
        for record in records:
            if record.session_id == session_id:
                sweep.remove(record)

        try:
            on_disk = self._store.session_path(session_id).is_dir()
        except (OSError, ValueError) as exc:
            sweep.fail(f"session {session_id}", exc)
            return sweep.result
        if on_disk:
            if dry_run:
                sweep.result.deleted_sessions += 1
            else:
                try:
                    if self._store.delete_session(session_id):
                        sweep.result.deleted_sessions += 1
                except _ITEM_ERRORS as exc:
                    sweep.fail(f"session {session_id}", exc)
        self._phase_completed("session", sweep.result, session_id=session_id)
        return sweep.result

    def status(self) -> StoreStatus:
        records = self._select(self._index.select_all_ordered)
        return StoreStatus(
            total_artifacts=len(records),
            total_sessions=len({record.session_id for record in records}),
            total_size_bytes=self._store.total_size(),
            oldest_artifact_at=records[0].created_at if records else None,
            newest_artifact_at=records[-1].created_at if records else None,
        )

    def _select(self, query: Callable[[], list[ArtifactRecord]]) -> list[ArtifactRecord]:
        try:
            return list(query())
        except (MetadataIndexError, OSError) as exc:
            raise RetentionSetupError(f"metadata index unavailable: {exc}") from exc

    def _phase_completed(self, phase: str, result: SweepResult, **fields: Any) -> None:
        self._logger.info(
            "sweep_phase_completed",
            phase=phase,
            dry_run=result.dry_run,
            deleted_artifacts=result.deleted_artifacts,
            deleted_sessions=result.deleted_sessions,
            freed_space_bytes=result.freed_space_bytes,
            errors=len(result.errors),
            **fields,
        )


class _Sweep:
    """Mutable bookkeeping for a single sweep invocation."""

    def __init__(
        self,
        store: ArtifactStore,
        index: MetadataIndex,
        logger: Any,
        *,
        dry_run: bool,
    ) -> None:
        self._store = store
        self._index = index
        self._logger = logger
        self._removed: set[tuple[str, str]] = set()
        self._pruned: set[str] = set()
        self.result = SweepResult(dry_run=dry_run)

    def is_removed(self, record: ArtifactRecord) -> bool:
        return (record.session_id, record.id) in self._removed

    def remove(self, record: ArtifactRecord) -> int:
        """Delete one artifact from store and index; returns the bytes freed."""

        try:
            size = self._store.artifact_size(record.session_id, record.id)
            if not self.result.dry_run:
                self._store.delete_artifact(record.session_id, record.id, prune_session=False)
                self._index.delete(record.id)
        except _ITEM_ERRORS as exc:
            self.fail(f"artifact {record.session_id}/{record.id}", exc)
            return 0

        self._removed.add((record.session_id, record.id))
        self.result.deleted_artifacts += 1
        self.result.freed_space_bytes += size
        return size

    def prune_sessions(self) -> None:
        """Remove sessions with no artifacts left, counting planned deletions as gone."""

        try:
            sessions = self._store.iter_sessions()
        except OSError as exc:
            self.fail("session scan", exc)
            return

        for session_id in sessions:
            if session_id in self._pruned:
                continue
            try:
                remaining = self._remaining(session_id, self._store.iter_artifacts(session_id))
                if remaining:
                    continue
                if not self.result.dry_run:
                    self._store.delete_session(session_id)
            except _ITEM_ERRORS as exc:
                self.fail(f"session {session_id}", exc)
                continue
            self._pruned.add(session_id)
            self.result.deleted_sessions += 1

    def fail(self, subject: str, exc: BaseException) -> None:
        message = f"{subject}: {exc}"
        self.result.errors.append(message)
        self._logger.warning("sweep_item_failed", subject=subject, error=str(exc))

    def _remaining(self, session_id: str, artifact_ids: Iterable[str]) -> list[str]:
        return [aid for aid in artifact_ids if (session_id, aid) not in self._removed]


def recommendations(status: StoreStatus, now: datetime | None = None) -> list[str]:
    """Advisory messages for a store's status; a single all-clear when healthy."""

    current = now if now is not None else _utc_now()
    messages: list[str] = []
    if status.total_size_bytes > _RECOMMEND_SIZE_BYTES:
        messages.append(
            f"Artifact storage is {format_bytes(status.total_size_bytes)}, above 3 GB; "
            "a cleanup is recommended."
        )
    if status.total_artifacts > _RECOMMEND_MAX_ARTIFACTS:
        messages.append(
            f"There are {status.total_artifacts} artifacts, more than "
            f"{_RECOMMEND_MAX_ARTIFACTS}; consider removing old artifacts."
        )
    if status.oldest_artifact_at is not None:
        age = current - status.oldest_artifact_at
        if age > _RECOMMEND_MAX_AGE:
            messages.append(
                f"Some artifacts are older than 30 days (oldest: {age.days} days ago)."
            )
    if not messages:
        messages.append("Artifact storage is healthy.")
    return messages


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


def _isoformat(value: datetime | None) -> str | None:
    return None if value is None else value.isoformat()


__all__ = [
    "RetentionEngine",
    "RetentionPolicy",
    "RetentionSetupError",
    "StoreStatus",
    "SweepResult",
    "recommendations",
]
