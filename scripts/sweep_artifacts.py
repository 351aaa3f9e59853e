"""
artifact-forge — scheduled retention sweep.

Purpose
- Run one age and quota sweep over the artifact store, suitable for cron or a
  systemd timer.
- Read storage paths and retention defaults from the regular config file.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"


def _ensure_src_path() -> None:
    if str(SRC_PATH) not in sys.path:
        sys.path.insert(0, str(SRC_PATH))


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Delete expired artifacts and enforce the storage quota.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Config file (default: ./artifact_forge.toml if present).",
    )
    parser.add_argument(
        "--max-age-days",
        type=float,
        default=None,
        help="Delete artifacts older than this many days (default: retention.max_age_days).",
    )
    parser.add_argument(
        "--max-size-gb",
        type=float,
        default=None,
        help="Storage quota in GiB (default: retention.max_size_gb).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be deleted without deleting it.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Emit machine-readable JSON output.",
    )
    return parser.parse_args(argv)


_TEXT_FIELDS = (
    "base_path",
    "max_age_days",
    "max_size_gb",
    "dry_run",
    "deleted_artifacts",
    "deleted_sessions",
    "freed_space",
)


def _emit(payload: Mapping[str, object], *, as_json: bool) -> None:
    if as_json:
        print(json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str))
        return
    for key in _TEXT_FIELDS:
        if key in payload:
            print(f"{key}: {payload[key]}")
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        print("errors:")
        for item in errors:
            print(f"  - {item}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    _ensure_src_path()
    from artifact_forge.config import load_config
    from artifact_forge.observability import configure_from_config
    from artifact_forge.retention import RetentionEngine, RetentionPolicy, SQLiteMetadataIndex
    from artifact_forge.storage import ArtifactStore

    try:
        config = load_config(
            args.config,
            cli_overrides={
                "retention.max_age_days": args.max_age_days,
                "retention.max_size_gb": args.max_size_gb,
            },
        )
        configure_from_config(config)
        retention = config["retention"]
        policy = RetentionPolicy.from_gb(
            max_age_days=retention["max_age_days"],
            max_size_gb=retention["max_size_gb"],
            dry_run=args.dry_run,
        )

        store = ArtifactStore(config["storage"]["base_path"])
        with SQLiteMetadataIndex(config["storage"]["index_path"]) as index:
            result = RetentionEngine(store, index).sweep(policy)
    except Exception as exc:  # noqa: BLE001 - script boundary reports every failure.
        if args.json:
            _emit({"dry_run": bool(args.dry_run), "error": str(exc)}, as_json=True)
        else:
            print(f"error: {exc}", file=sys.stderr)
        return 1

    _emit(
        {
            "base_path": store.base_path.as_posix(),
            "max_age_days": retention["max_age_days"],
            "max_size_gb": retention["max_size_gb"],
            **result.to_dict(),
        },
        as_json=args.json,
    )
    return 1 if result.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
