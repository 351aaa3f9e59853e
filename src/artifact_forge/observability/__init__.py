"""Observability: structured logging configuration."""

from artifact_forge.observability.logging import (
    configure_from_config,
    configure_logging,
    redact_event,
    shutdown_logging,
)

__all__ = [
    "configure_from_config",
    "configure_logging",
    "redact_event",
    "shutdown_logging",
]
