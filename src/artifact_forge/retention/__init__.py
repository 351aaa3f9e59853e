"""Retention: age and quota eviction over stored artifacts."""

from artifact_forge.retention.engine import (
    RetentionEngine,
    RetentionPolicy,
    RetentionSetupError,
    StoreStatus,
    SweepResult,
    recommendations,
)
from artifact_forge.retention.metadata_index import (
    ArtifactRecord,
    MetadataIndex,
    MetadataIndexError,
    SQLiteMetadataIndex,
)

__all__ = [
    "ArtifactRecord",
    "MetadataIndex",
    "MetadataIndexError",
    "RetentionEngine",
    "RetentionPolicy",
    "RetentionSetupError",
    "SQLiteMetadataIndex",
    "StoreStatus",
    "SweepResult",
    "recommendations",
]
