"""Command-line interface router for artifact-forge."""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from artifact_forge.config import (
    ConfigLoadError,
    ConfigValidationError,
    effective_config,
    load_config,
)
from artifact_forge.observability import configure_from_config, configure_logging
from artifact_forge.retention import (
    ArtifactRecord,
    RetentionEngine,
    RetentionPolicy,
    SQLiteMetadataIndex,
    recommendations,
)
from artifact_forge.sandbox import ExecutionOptions, ExecutionResult, SandboxedRunner
from artifact_forge.storage import (
    ArtifactFile,
    ArtifactKind,
    ArtifactNotFoundError,
    ArtifactRef,
    ArtifactStore,
    ArtifactStoreError,
    ArtifactValidationError,
    parse_artifacts,
)
from artifact_forge.storage.languages import language_for_filename
from artifact_forge.utils.fs import format_bytes

_STDIN_MARKER: Final[str] = "-"


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


class _Context:
    """Lazily constructed services shared by one command invocation."""

    def __init__(self, config: Mapping[str, Any]) -> None:
        self.config = config
        self._store: ArtifactStore | None = None
        self._index: SQLiteMetadataIndex | None = None

    @property
    def store(self) -> ArtifactStore:
        if self._store is None:
            self._store = ArtifactStore(self.config["storage"]["base_path"])
        return self._store

    @property
    def index(self) -> SQLiteMetadataIndex:
        if self._index is None:
            self._index = SQLiteMetadataIndex(self.config["storage"]["index_path"])
        return self._index

    def engine(self) -> RetentionEngine:
        return RetentionEngine(self.store, self.index)

    def runner(self) -> SandboxedRunner:
        return SandboxedRunner(self.store, scratch_dir=self.config["sandbox"]["scratch_dir"])

    def execution_options(self, args: argparse.Namespace) -> ExecutionOptions:
        sandbox = self.config["sandbox"]
        timeout_ms = args.timeout_ms if args.timeout_ms is not None else sandbox["timeout_ms"]
        allow_network = bool(args.allow_network or sandbox["allow_network_access"])
        try:
            return ExecutionOptions(
                timeout_ms=timeout_ms,
                working_directory=getattr(args, "cwd", None),
                environment=_parse_env_pairs(args.env),
                allow_network_access=allow_network,
            )
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=2) from exc


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse command router for all supported CLI workflows."""

    parser = argparse.ArgumentParser(
        prog="artifact-forge",
        description=(
            "artifact-forge: store, link, sweep, and run generated artifacts.\n\n"
            "Common workflows:\n"
            "  artifact-forge save s1 a1 index.html style.css   Store a linked project\n"
            "  artifact-forge run s1 a1                         Run a stored artifact\n"
            "  artifact-forge sweep --dry-run                   Preview a retention sweep\n"
            "  artifact-forge status                            Show storage status\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to TOML config (default: ./artifact_forge.toml if present).",
    )
    common.add_argument(
        "--base-path",
        default=None,
        help="Override storage.base_path.",
    )
    common.add_argument(
        "--index-path",
        default=None,
        help="Override storage.index_path.",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level.",
    )
    common.add_argument("--json", action="store_true", help="Emit deterministic JSON output")

    execution = argparse.ArgumentParser(add_help=False)
    execution.add_argument(
        "--timeout-ms", type=int, default=None, help="Override sandbox.timeout_ms."
    )
    execution.add_argument(
        "--allow-network",
        action="store_true",
        default=False,
        help="Permit network access inside the sandbox.",
    )
    execution.add_argument(
        "--env",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Extra environment variable for the child process (repeatable).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # save ----------------------------------------------------------------
    save_parser = subparsers.add_parser(
        "save", parents=[common], help="Store files as an artifact (links HTML projects)"
    )
    save_parser.add_argument("session_id")
    save_parser.add_argument("artifact_id")
    save_parser.add_argument("paths", nargs="+", metavar="PATH")
    save_parser.add_argument(
        "--language", default=None, help="Language tag (single file only; default: by suffix)"
    )
    save_parser.add_argument(
        "--kind",
        choices=[item.value for item in ArtifactKind],
        default=None,
        help="Apply type-specific content processing before storing",
    )
    save_parser.set_defaults(handler=_cmd_save)

    # show ----------------------------------------------------------------
    show_parser = subparsers.add_parser(
        "show", parents=[common], help="Print a stored file (main file by default)"
    )
    show_parser.add_argument("session_id")
    show_parser.add_argument("artifact_id")
    show_parser.add_argument("--file", dest="filename", default=None)
    show_parser.set_defaults(handler=_cmd_show)

    # ls ------------------------------------------------------------------
    ls_parser = subparsers.add_parser(
        "ls", parents=[common], help="List sessions, a session's artifacts, or files"
    )
    ls_parser.add_argument("session_id", nargs="?", default=None)
    ls_parser.add_argument("artifact_id", nargs="?", default=None)
    ls_parser.set_defaults(handler=_cmd_ls)

    # rm ------------------------------------------------------------------
    rm_parser = subparsers.add_parser(
        "rm", parents=[common], help="Delete an artifact, or a whole session"
    )
    rm_parser.add_argument("session_id")
    rm_parser.add_argument("artifact_id", nargs="?", default=None)
    rm_parser.set_defaults(handler=_cmd_rm)

    # sweep ---------------------------------------------------------------
    sweep_parser = subparsers.add_parser(
        "sweep", parents=[common], help="Run an age and quota retention sweep"
    )
    sweep_parser.add_argument("--max-age-days", type=float, default=None)
    sweep_parser.add_argument("--max-size-gb", type=float, default=None)
    sweep_parser.add_argument(
        "--session", default=None, help="Sweep only this session (all of its artifacts)"
    )
    sweep_parser.add_argument(
        "--dry-run", action="store_true", help="Report deletions without mutating"
    )
    sweep_parser.set_defaults(handler=_cmd_sweep)

    # status --------------------------------------------------------------
    status_parser = subparsers.add_parser(
        "status", parents=[common], help="Show storage totals and recommendations"
    )
    status_parser.set_defaults(handler=_cmd_status)

    # exec ----------------------------------------------------------------
    exec_parser = subparsers.add_parser(
        "exec", parents=[common, execution], help="Run Python code in the sandbox"
    )
    exec_parser.add_argument("script", nargs="?", default=None, help="Script path, or - for stdin")
    exec_parser.add_argument("--code", default=None, help="Inline source code")
    exec_parser.add_argument("--cwd", default=None, help="Working directory for the child")
    exec_parser.set_defaults(handler=_cmd_exec)

    # run -----------------------------------------------------------------
    run_parser = subparsers.add_parser(
        "run", parents=[common, execution], help="Run a stored artifact in the sandbox"
    )
    run_parser.add_argument("session_id")
    run_parser.add_argument("artifact_id")
    run_parser.add_argument("--entrypoint", default=None, help="File to run inside the artifact")
    run_parser.set_defaults(handler=_cmd_run)

    # extract -------------------------------------------------------------
    extract_parser = subparsers.add_parser(
        "extract", parents=[common], help="Detect artifacts in a markdown reply"
    )
    extract_parser.add_argument("markdown", help="Markdown path, or - for stdin")
    extract_parser.set_defaults(handler=_cmd_extract)

    # doctor --------------------------------------------------------------
    doctor_parser = subparsers.add_parser(
        "doctor", parents=[common], help="Check interpreter availability and storage paths"
    )
    doctor_parser.set_defaults(handler=_cmd_doctor)

    # config --------------------------------------------------------------
    config_parser = subparsers.add_parser(
        "config", parents=[common], help="Show effective configuration (redacted)"
    )
    config_parser.set_defaults(handler=_cmd_config)

    return parser


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        config = _load_effective_config(namespace)
        configure_from_config(config)
        if namespace.verbose:
            observability = config["observability"]
            configure_logging(
                "DEBUG",
                observability["log_format"],
                observability["log_file"],
                redact_secrets=observability["redact_secrets"],
            )
        result = handler(namespace, _Context(config))
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_save(args: argparse.Namespace, ctx: _Context) -> int:
    if args.language is not None and len(args.paths) > 1:
        raise CLIError("--language applies to single-file saves only", exit_code=2)

    files: list[ArtifactFile] = []
    for raw_path in args.paths:
        path = Path(raw_path)
        content = _read_text(path)
        language = args.language
        if language is None:
            language = language_for_filename(path.name)
        files.append(
            ArtifactFile(content=content, language=language, filename=path.name, kind=args.kind)
        )

    try:
        ref = ArtifactRef(args.session_id, args.artifact_id)
        saved = ctx.store.save_project(ref, files)
    except ArtifactValidationError as exc:
        raise CLIError(f"invalid artifact content: {exc}", exit_code=2) from exc
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    except ArtifactStoreError as exc:
        raise CLIError(str(exc)) from exc

    existing = ctx.index.get(ref.artifact_id)
    if existing is None or existing.session_id != ref.session_id:
        ctx.index.register(
            ArtifactRecord(
                id=ref.artifact_id,
                session_id=ref.session_id,
                created_at=datetime.now(tz=UTC),
            )
        )

    main_name = ctx.store.resolve_main_file(ref.session_id, ref.artifact_id).name
    payload = {
        "command": "save",
        "session_id": ref.session_id,
        "artifact_id": ref.artifact_id,
        "files": [path.name for path in saved],
        "url": ArtifactStore.artifact_url(ref.session_id, ref.artifact_id, main_name),
    }
    if args.json:
        _emit_json(payload)
        return 0
    for path in saved:
        print(f"saved {path}")
    print(f"url: {payload['url']}")
    return 0


def _cmd_show(args: argparse.Namespace, ctx: _Context) -> int:
    try:
        target = (
            args.filename
            if args.filename is not None
            else ctx.store.resolve_main_file(args.session_id, args.artifact_id).name
        )
        content = ctx.store.read_file(args.session_id, args.artifact_id, target)
    except ArtifactNotFoundError as exc:
        raise CLIError(str(exc)) from exc
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    if args.json:
        _emit_json(
            {
                "command": "show",
                "session_id": args.session_id,
                "artifact_id": args.artifact_id,
                "filename": target,
                "content": content,
            }
        )
        return 0
    _write_stdout(content)
    return 0


def _cmd_ls(args: argparse.Namespace, ctx: _Context) -> int:
    store = ctx.store
    try:
        if args.session_id is None:
            entries: list[dict[str, object]] = [
                {"session_id": sid, "artifacts": len(store.iter_artifacts(sid))}
                for sid in store.iter_sessions()
            ]
            lines = [f"{item['session_id']}\t{item['artifacts']} artifact(s)" for item in entries]
        elif args.artifact_id is None:
            entries = [
                {"artifact_id": aid, "size_bytes": store.artifact_size(args.session_id, aid)}
                for aid in store.iter_artifacts(args.session_id)
            ]
            lines = [
                f"{item['artifact_id']}\t{format_bytes(int(str(item['size_bytes'])))}"
                for item in entries
            ]
        else:
            entries = [
                {"filename": name}
                for name in store.list_files(args.session_id, args.artifact_id)
            ]
            lines = [str(item["filename"]) for item in entries]
    except ArtifactNotFoundError as exc:
        raise CLIError(str(exc)) from exc
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    if args.json:
        _emit_json({"command": "ls", "entries": entries})
        return 0
    for line in lines:
        print(line)
    return 0


def _cmd_rm(args: argparse.Namespace, ctx: _Context) -> int:
    try:
        if args.artifact_id is None:
            result = ctx.engine().sweep_session(args.session_id)
            payload: dict[str, object] = {"command": "rm", **result.to_dict()}
            failed = bool(result.errors)
        else:
            removed = ctx.store.delete_artifact(args.session_id, args.artifact_id)
            record = ctx.index.get(args.artifact_id)
            if record is not None and record.session_id == args.session_id:
                ctx.index.delete(args.artifact_id)
            payload = {
                "command": "rm",
                "session_id": args.session_id,
                "artifact_id": args.artifact_id,
                "removed": removed,
            }
            failed = False
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc

    if args.json:
        _emit_json(payload)
    else:
        for key in sorted(payload):
            if key != "command":
                print(f"{key}: {payload[key]}")
    return 1 if failed else 0


def _cmd_sweep(args: argparse.Namespace, ctx: _Context) -> int:
    retention = ctx.config["retention"]
    engine = ctx.engine()
    if args.session is not None:
        try:
            result = engine.sweep_session(args.session, dry_run=args.dry_run)
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=2) from exc
    else:
        try:
            policy = RetentionPolicy.from_gb(
                max_age_days=_pick(args.max_age_days, retention["max_age_days"]),
                max_size_gb=_pick(args.max_size_gb, retention["max_size_gb"]),
                dry_run=args.dry_run,
            )
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=2) from exc
        result = engine.sweep(policy)

    payload = {"command": "sweep", **result.to_dict()}
    if args.json:
        _emit_json(payload)
    else:
        prefix = "would delete" if result.dry_run else "deleted"
        print(
            f"{prefix} {result.deleted_artifacts} artifact(s), "
            f"{result.deleted_sessions} session(s)"
        )
        print(f"freed: {format_bytes(result.freed_space_bytes)}")
        for error in result.errors:
            print(f"error: {error}", file=sys.stderr)
    return 1 if result.errors else 0


def _cmd_status(args: argparse.Namespace, ctx: _Context) -> int:
    status = ctx.engine().status()
    advice = recommendations(status)
    payload = {"command": "status", **status.to_dict(), "recommendations": advice}
    if args.json:
        _emit_json(payload)
        return 0
    print(f"artifacts: {status.total_artifacts}")
    print(f"sessions:  {status.total_sessions}")
    print(f"size:      {format_bytes(status.total_size_bytes)}")
    print(f"oldest:    {payload['oldest_artifact_at'] or '-'}")
    print(f"newest:    {payload['newest_artifact_at'] or '-'}")
    for line in advice:
        print(f"- {line}")
    return 0


def _cmd_exec(args: argparse.Namespace, ctx: _Context) -> int:
    if (args.code is None) == (args.script is None):
        raise CLIError("provide exactly one of --code or a script path", exit_code=2)
    if args.code is not None:
        code = args.code
    elif args.script == _STDIN_MARKER:
        code = sys.stdin.read()
    else:
        code = _read_text(Path(args.script))

    options = ctx.execution_options(args)
    with ctx.runner() as runner:
        result = runner.execute(code, options)
    return _report_execution("exec", result, as_json=args.json)


def _cmd_run(args: argparse.Namespace, ctx: _Context) -> int:
    options = ctx.execution_options(args)
    try:
        with ctx.runner() as runner:
            result = runner.execute_artifact(
                args.session_id,
                args.artifact_id,
                options,
                entrypoint=args.entrypoint,
            )
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    return _report_execution("run", result, as_json=args.json)


def _cmd_extract(args: argparse.Namespace, ctx: _Context) -> int:
    del ctx
    if args.markdown == _STDIN_MARKER:
        markdown = sys.stdin.read()
    else:
        markdown = _read_text(Path(args.markdown))
    artifacts = parse_artifacts(markdown)
    if args.json:
        _emit_json(
            {
                "command": "extract",
                "artifacts": [
                    {
                        "kind": item.kind.value,
                        "language": item.language,
                        "title": item.title,
                        "content": item.content,
                    }
                    for item in artifacts
                ],
            }
        )
        return 0
    for item in artifacts:
        print(f"{item.kind.value}\t{item.language}\t{item.title}")
    return 0


def _cmd_doctor(args: argparse.Namespace, ctx: _Context) -> int:
    with ctx.runner() as runner:
        health = runner.health_check()
    base_path = ctx.store.base_path
    payload = {
        "command": "doctor",
        "sandbox": health,
        "storage": {"base_path": str(base_path), "exists": base_path.is_dir()},
        "index_path": str(ctx.index.path),
    }
    if args.json:
        _emit_json(payload)
    else:
        state = "ok" if health["available"] else "unavailable"
        print(f"interpreter: {health['interpreter'] or '-'} ({state})")
        if health["error"]:
            print(f"  {health['error']}")
        print(f"storage:     {base_path}")
        print(f"index:       {payload['index_path']}")
    return 0 if health["available"] else 1


def _cmd_config(args: argparse.Namespace, ctx: _Context) -> int:
    redacted = effective_config(ctx.config)
    if args.json:
        _emit_json({"command": "config", "config": redacted})
        return 0
    print(json.dumps(redacted, indent=2, sort_keys=True, ensure_ascii=False))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _emit_json(payload: Mapping[str, object]) -> None:
    """Emit a JSON payload to stdout with deterministic formatting."""

    print(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


def _report_execution(command: str, result: ExecutionResult, *, as_json: bool) -> int:
    if as_json:
        _emit_json({"command": command, **result.to_dict()})
    else:
        if result.output:
            _write_stdout(result.output)
        if result.error:
            print(result.error, file=sys.stderr)
    return 0 if result.success else 1


def _write_stdout(text: str) -> None:
    sys.stdout.write(text if text.endswith("\n") else text + "\n")


def _load_effective_config(args: argparse.Namespace) -> dict[str, Any]:
    overrides = {
        "storage.base_path": args.base_path,
        "storage.index_path": args.index_path,
    }
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"unable to read {path}: {exc}", exit_code=2) from exc


def _parse_env_pairs(pairs: Sequence[str]) -> dict[str, str]:
    env: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise CLIError(f"invalid --env value {pair!r}; expected KEY=VALUE", exit_code=2)
        env[key.strip()] = value
    return env


def _pick(override: float | None, configured: float) -> float:
    return configured if override is None else override


__all__ = ["CLIError", "build_parser", "run_cli"]
