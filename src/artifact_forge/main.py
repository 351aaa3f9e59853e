"""Executable CLI entrypoint for ``artifact_forge``."""

from __future__ import annotations

import sys
import traceback
from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence


class ExitCode(IntEnum):
    """Process exit codes shared by every subcommand."""

    SUCCESS = 0
    OPERATION_FAILED = 1
    CONFIG_ERROR = 2
    INTERNAL_ERROR = 4


def cli_entrypoint(argv: Sequence[str] | None = None) -> int:
    """Entrypoint used by ``python -m artifact_forge`` and the console script."""

    try:
        from artifact_forge.ui.cli import run_cli

        return _normalize_exit_code(run_cli(argv))
    except SystemExit as exc:
        return _normalize_exit_code(exc.code)
    except BaseException as exc:  # noqa: BLE001 - CLI boundary normalization.
        exit_code = _route_exception(exc)
        _emit_failure(exc, exit_code)
        return int(exit_code)


def _normalize_exit_code(raw_code: object) -> int:
    if raw_code is None:
        return int(ExitCode.SUCCESS)
    if isinstance(raw_code, int) and raw_code in tuple(ExitCode):
        return raw_code
    if isinstance(raw_code, str) and raw_code.strip():
        _write_stderr(raw_code.strip())
    return int(ExitCode.INTERNAL_ERROR)


def _route_exception(exc: BaseException) -> ExitCode:
    from artifact_forge.config import ConfigLoadError, ConfigValidationError
    from artifact_forge.retention import MetadataIndexError, RetentionSetupError
    from artifact_forge.sandbox import SandboxConfigurationError
    from artifact_forge.storage import ArtifactStoreError

    config_errors = (ConfigLoadError, ConfigValidationError, SandboxConfigurationError)
    operation_errors = (ArtifactStoreError, MetadataIndexError, RetentionSetupError)
    for item in _exception_chain(exc):
        if isinstance(item, config_errors):
            return ExitCode.CONFIG_ERROR
        if isinstance(item, operation_errors):
            return ExitCode.OPERATION_FAILED
    return ExitCode.INTERNAL_ERROR


def _exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and its explicit or implicit causes, outermost first."""

    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif not current.__suppress_context__:
            current = current.__context__
        else:
            current = None


def _emit_failure(exc: BaseException, exit_code: ExitCode) -> None:
    if exit_code is ExitCode.INTERNAL_ERROR:
        traceback.print_exception(type(exc), exc, exc.__traceback__, file=sys.stderr)
        return
    _write_stderr(f"error: {str(exc).strip() or exc.__class__.__name__}")


def _write_stderr(message: str) -> None:
    sys.stderr.write(message.rstrip("\n") + "\n")


__all__ = ["ExitCode", "cli_entrypoint"]
