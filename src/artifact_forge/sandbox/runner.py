"""Time-bounded execution of Python code in a restricted child process."""

from __future__ import annotations

import contextlib
import os
import subprocess
import tempfile
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final

import psutil
import structlog

from artifact_forge.constants import DEFAULT_EXECUTION_TIMEOUT_MS
from artifact_forge.sandbox.interpreter import InterpreterProbe, SandboxConfigurationError
from artifact_forge.sandbox.prelude import build_script
from artifact_forge.storage.artifact_store import ArtifactNotFoundError, ArtifactStore
from artifact_forge.storage.languages import main_filename
from artifact_forge.storage.models import validate_filename

NO_OUTPUT_MESSAGE: Final[str] = "Execution completed (no output)"
_HEALTH_CHECK_CODE: Final[str] = "print('ok')"
_HEALTH_CHECK_TIMEOUT_MS: Final[int] = 10_000
_KILL_WAIT_SECONDS: Final[float] = 2.0
_PYTHON_MAIN: Final[str] = main_filename("python")


@dataclass(frozen=True, slots=True)
class ExecutionOptions:
    timeout_ms: int = DEFAULT_EXECUTION_TIMEOUT_MS
    working_directory: Path | str | None = None
    environment: Mapping[str, str] = field(default_factory=dict)
    allow_network_access: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.timeout_ms, bool) or not isinstance(self.timeout_ms, int):
            raise ValueError("timeout_ms must be an integer")
        if self.timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")
        if not isinstance(self.environment, Mapping):
            raise ValueError("environment must be a mapping")
        for key, value in self.environment.items():
            if not isinstance(key, str) or not isinstance(value, str):
                raise ValueError("environment keys and values must be strings")
        object.__setattr__(self, "environment", dict(self.environment))


@dataclass(frozen=True, slots=True)
class ExecutionResult:
    success: bool
    output: str
    error: str | None
    execution_time_ms: float

    def to_dict(self) -> dict[str, object]:
        return {
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "execution_time_ms": round(self.execution_time_ms, 3),
        }


class SandboxedRunner:
    """Run code strings or stored artifacts under the security prelude.

    The only state shared between calls is the interpreter probe cache, which
    is dropped by ``close()``. Concurrent ``execute`` calls are independent
    child processes; limiting how many run at once is the caller's job.
    """

    def __init__(
        self,
        store: ArtifactStore | None = None,
        *,
        interpreter_candidates: Sequence[str] | None = None,
        scratch_dir: Path | str | None = None,
        probe: InterpreterProbe | None = None,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._probe = (
            probe
            if probe is not None
            else InterpreterProbe(interpreter_candidates, logger=self._logger)
        )
        self._scratch_dir = None if scratch_dir is None else Path(scratch_dir).expanduser()

    @property
    def probe(self) -> InterpreterProbe:
        return self._probe

    def execute(self, code: str, options: ExecutionOptions | None = None) -> ExecutionResult:
        """Run ``code`` and classify the outcome; runtime failures never raise.

        ``InterpreterNotFoundError`` is raised before any file is written when
        no interpreter is available. ``ValueError`` signals malformed input.
        """

        if not isinstance(code, str):
            raise ValueError("code must be a string")
        opts = options if options is not None else ExecutionOptions()
        interpreter = self._probe.resolve()

        # Resolved so the child does not reinterpret a relative path against itself.
        cwd = (
            Path(opts.working_directory).resolve()
            if opts.working_directory is not None
            else Path.cwd()
        )
        script = build_script(
            code,
            timeout_ms=opts.timeout_ms,
            allow_network_access=opts.allow_network_access,
        )

        started = time.perf_counter()
        script_path: Path | None = None
        try:
            script_path = self._write_script(script)
            return self._run(interpreter, script_path, cwd, opts, started)
        except OSError as exc:
            return self._finish(
                started,
                success=False,
                output="",
                error=f"Failed to start execution: {exc}",
            )
        finally:
            if script_path is not None:
                with contextlib.suppress(OSError):
                    script_path.unlink(missing_ok=True)

    def execute_artifact(
        self,
        session_id: str,
        artifact_id: str,
        options: ExecutionOptions | None = None,
        *,
        entrypoint: str | None = None,
    ) -> ExecutionResult:
        """Run a stored artifact's entrypoint with the artifact as working directory."""

        store = self._store
        if store is None:
            raise ValueError("execute_artifact requires an ArtifactStore")
        opts = options if options is not None else ExecutionOptions()

        artifact_dir = store.artifact_path(session_id, artifact_id)
        try:
            target = _resolve_entrypoint(store, session_id, artifact_id, entrypoint)
            code = store.read_file(session_id, artifact_id, target)
        except ArtifactNotFoundError as exc:
            return ExecutionResult(
                success=False,
                output="",
                error=f"Artifact not found: {exc}",
                execution_time_ms=0.0,
            )
        except OSError as exc:
            return ExecutionResult(
                success=False,
                output="",
                error=f"Failed to read artifact: {exc}",
                execution_time_ms=0.0,
            )

        return self.execute(
            code,
            ExecutionOptions(
                timeout_ms=opts.timeout_ms,
                working_directory=artifact_dir,
                environment=opts.environment,
                allow_network_access=opts.allow_network_access,
            ),
        )

    def health_check(self) -> dict[str, object]:
        """Report whether an interpreter is available and can run a trivial script."""

        try:
            interpreter = self._probe.resolve()
        except SandboxConfigurationError as exc:
            return {"available": False, "interpreter": None, "error": str(exc)}
        options = ExecutionOptions(timeout_ms=_HEALTH_CHECK_TIMEOUT_MS)
        result = self.execute(_HEALTH_CHECK_CODE, options)
        return {
            "available": result.success and "ok" in result.output,
            "interpreter": interpreter,
            "error": result.error,
        }

    def close(self) -> None:
        self._probe.reset()

    def __enter__(self) -> SandboxedRunner:
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        del exc_type, exc, tb
        self.close()

    def _write_script(self, script: str) -> Path:
        scratch = None
        if self._scratch_dir is not None:
            self._scratch_dir.mkdir(parents=True, exist_ok=True)
            scratch = str(self._scratch_dir)
        fd, name = tempfile.mkstemp(prefix="sandbox_", suffix=".py", dir=scratch)
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(script)
        return Path(name).absolute()

    def _run(
        self,
        interpreter: str,
        script_path: Path,
        cwd: Path,
        opts: ExecutionOptions,
        started: float,
    ) -> ExecutionResult:
        process = subprocess.Popen(
            [interpreter, str(script_path)],
            cwd=cwd,
            env=_build_environment(cwd, opts.environment),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
        try:
            stdout, stderr = process.communicate(timeout=opts.timeout_ms / 1000.0)
        except subprocess.TimeoutExpired:
            _kill_tree(process)
            stdout, _stderr = process.communicate()
            self._logger.warning(
                "execution_timed_out",
                timeout_ms=opts.timeout_ms,
                pid=process.pid,
            )
            return self._finish(
                started,
                success=False,
                output=stdout or "",
                error=f"Execution timed out after {opts.timeout_ms} ms",
            )

        if process.returncode == 0:
            return self._finish(
                started,
                success=True,
                output=stdout if stdout else NO_OUTPUT_MESSAGE,
                error=None,
            )
        return self._finish(
            started,
            success=False,
            output=stdout or "",
            error=stderr.strip() or f"Process exited with code {process.returncode}",
        )

    def _finish(
        self,
        started: float,
        *,
        success: bool,
        output: str,
        error: str | None,
    ) -> ExecutionResult:
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        self._logger.info(
            "execution_finished",
            success=success,
            execution_time_ms=round(elapsed_ms, 3),
        )
        return ExecutionResult(
            success=success,
            output=output,
            error=error,
            execution_time_ms=elapsed_ms,
        )


def _resolve_entrypoint(
    store: ArtifactStore,
    session_id: str,
    artifact_id: str,
    entrypoint: str | None,
) -> str:
    if entrypoint is not None:
        return validate_filename(entrypoint)
    if _PYTHON_MAIN in store.list_files(session_id, artifact_id):
        return _PYTHON_MAIN
    return store.resolve_main_file(session_id, artifact_id, language="python").name


def _build_environment(cwd: Path, overrides: Mapping[str, str]) -> dict[str, str]:
    merged: dict[str, str] = {}
    host_path = os.environ.get("PATH")
    if host_path:
        merged["PATH"] = host_path
    # Windows needs SYSTEMROOT to initialize the interpreter.
    system_root = os.environ.get("SYSTEMROOT")
    if system_root:
        merged["SYSTEMROOT"] = system_root
    merged.update(overrides)
    merged.update(
        {
            "PYTHONUNBUFFERED": "1",
            "PYTHONDONTWRITEBYTECODE": "1",
            "PYTHONIOENCODING": "utf-8",
            "PYTHONPATH": str(cwd),
        }
    )
    return merged


def _kill_tree(process: subprocess.Popen[str]) -> None:
    try:
        parent = psutil.Process(process.pid)
        children = parent.children(recursive=True)
    except psutil.NoSuchProcess:
        children = []
    for child in children:
        with contextlib.suppress(psutil.NoSuchProcess):
            child.kill()
    with contextlib.suppress(ProcessLookupError):
        process.kill()
    psutil.wait_procs(children, timeout=_KILL_WAIT_SECONDS)


__all__ = [
    "NO_OUTPUT_MESSAGE",
    "ExecutionOptions",
    "ExecutionResult",
    "SandboxedRunner",
]
