"""Python interpreter discovery for the sandboxed runner."""

from __future__ import annotations

import subprocess
import sys
from collections.abc import Sequence
from typing import Any

import structlog

from artifact_forge.constants import (
    DEFAULT_INTERPRETER_CANDIDATES,
    INTERPRETER_PROBE_TIMEOUT_SECONDS,
)


class SandboxConfigurationError(RuntimeError):
    """Raised when the sandbox cannot be set up on this host."""


class InterpreterNotFoundError(SandboxConfigurationError):
    """Raised when no candidate interpreter answers the version probe."""


def default_candidates() -> tuple[str, ...]:
    """Candidates in priority order: the running interpreter first, then PATH names."""

    ordered: dict[str, None] = {}
    if sys.executable:
        ordered[sys.executable] = None
    for name in DEFAULT_INTERPRETER_CANDIDATES:
        ordered.setdefault(name, None)
    return tuple(ordered)


class InterpreterProbe:
    """Resolve and cache the first interpreter that answers ``--version``.

    The cache lives on the instance; ``reset()`` forgets it so the next
    ``resolve()`` probes again.
    """

    def __init__(
        self,
        candidates: Sequence[str] | None = None,
        *,
        timeout_seconds: float = INTERPRETER_PROBE_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        resolved = tuple(candidates) if candidates is not None else default_candidates()
        if not resolved:
            raise ValueError("candidates must not be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._candidates = resolved
        self._timeout_seconds = float(timeout_seconds)
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._resolved: str | None = None

    @property
    def candidates(self) -> tuple[str, ...]:
        return self._candidates

    @property
    def cached(self) -> str | None:
        return self._resolved

    def resolve(self) -> str:
        if self._resolved is not None:
            return self._resolved

        for candidate in self._candidates:
            version = self._probe(candidate)
            if version is None:
                continue
            self._resolved = candidate
            self._logger.info("interpreter_resolved", interpreter=candidate, version=version)
            return candidate

        raise InterpreterNotFoundError(
            "no Python interpreter found; tried: " + ", ".join(self._candidates)
        )

    def reset(self) -> None:
        self._resolved = None

    def _probe(self, candidate: str) -> str | None:
        try:
            completed = subprocess.run(
                [candidate, "--version"],
                check=False,
                capture_output=True,
                text=True,
                timeout=self._timeout_seconds,
            )
        except (OSError, subprocess.SubprocessError):
            return None
        if completed.returncode != 0:
            return None
        # Python 2 printed its version to stderr.
        return (completed.stdout or completed.stderr).strip() or candidate


__all__ = [
    "InterpreterNotFoundError",
    "InterpreterProbe",
    "SandboxConfigurationError",
    "default_candidates",
]
