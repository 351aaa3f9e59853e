"""Artifact storage: on-disk layout, language conventions, and project linking."""

from artifact_forge.storage.artifact_store import (
    ArtifactNotFoundError,
    ArtifactStore,
    ArtifactStoreError,
)
from artifact_forge.storage.content import (
    ArtifactKind,
    ArtifactValidationError,
    describe_content,
    prepare_content,
)
from artifact_forge.storage.extraction import ParsedArtifact, parse_artifacts
from artifact_forge.storage.linker import ProjectLinker, inject_asset_links
from artifact_forge.storage.models import ArtifactFile, ArtifactRef

__all__ = [
    "ArtifactFile",
    "ArtifactKind",
    "ArtifactNotFoundError",
    "ArtifactRef",
    "ArtifactStore",
    "ArtifactStoreError",
    "ArtifactValidationError",
    "ParsedArtifact",
    "ProjectLinker",
    "describe_content",
    "inject_asset_links",
    "parse_artifacts",
    "prepare_content",
]
