"""
artifact-forge — script subprocess smoke tests

File: tests/unit/scripts/test_scripts_smoke.py

Purpose
- Keep the scheduled sweep entrypoint executable and deterministic at a smoke-test level.
- Verify `--help`, `--json` output structure, and `--dry-run` non-destructive safety behavior.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[3]
SRC_PATH = REPO_ROOT / "src"


def _run_script(*args: str, cwd: Path = REPO_ROOT) -> subprocess.CompletedProcess[str]:
    env = {key: value for key, value in os.environ.items() if not key.startswith("ARTIFACT_FORGE_")}
    existing_pythonpath = env.get("PYTHONPATH")
    src_pythonpath = str(SRC_PATH)
    env["PYTHONPATH"] = (
        src_pythonpath if not existing_pythonpath else f"{src_pythonpath}:{existing_pythonpath}"
    )
    return subprocess.run(
        [sys.executable, str(REPO_ROOT / "scripts" / "sweep_artifacts.py"), *args],
        cwd=cwd,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


def _render_failure(label: str, completed: subprocess.CompletedProcess[str]) -> str:
    return (
        f"{label} failed with exit code {completed.returncode}\n"
        f"stdout:\n{completed.stdout}\n"
        f"stderr:\n{completed.stderr}\n"
    )


def _seed_config(root: Path) -> Path:
    candidate = root / "store" / "session_s1" / "artifact_a1"
    candidate.mkdir(parents=True, exist_ok=True)
    (candidate / "main.py").write_text("print('keep me')\n", encoding="utf-8")
    (root / "store" / "session_empty").mkdir()
    config_path = root / "artifact_forge.toml"
    config_path.write_text(
        '[storage]\nbase_path = "store"\nindex_path = "index.sqlite"\n',
        encoding="utf-8",
    )
    return config_path


@pytest.mark.unit
def test_sweep_artifacts_help_smoke() -> None:
    result = _run_script("--help")

    assert result.returncode == 0, _render_failure("sweep_artifacts --help", result)
    lowered_output = result.stdout.lower()
    assert "usage" in lowered_output
    assert "--dry-run" in lowered_output
    assert "--max-size-gb" in lowered_output


@pytest.mark.unit
def test_sweep_artifacts_dry_run_is_non_destructive(tmp_path: Path) -> None:
    config_path = _seed_config(tmp_path)

    result = _run_script("--config", str(config_path), "--dry-run", "--json", cwd=tmp_path)

    assert result.returncode == 0, _render_failure("sweep_artifacts --dry-run", result)
    payload = json.loads(result.stdout)
    assert payload["dry_run"] is True
    assert payload["deleted_sessions"] == 1
    assert payload["deleted_artifacts"] == 0
    assert {"base_path", "max_age_days", "max_size_gb", "freed_space", "errors"} <= set(payload)
    assert (tmp_path / "store" / "session_empty").is_dir()
    assert (tmp_path / "store" / "session_s1" / "artifact_a1" / "main.py").is_file()


@pytest.mark.unit
def test_sweep_artifacts_live_run_prunes_empty_sessions(tmp_path: Path) -> None:
    config_path = _seed_config(tmp_path)

    result = _run_script("--config", str(config_path), cwd=tmp_path)

    assert result.returncode == 0, _render_failure("sweep_artifacts", result)
    assert "deleted_sessions: 1" in result.stdout
    assert not (tmp_path / "store" / "session_empty").exists()
    assert (tmp_path / "store" / "session_s1" / "artifact_a1").is_dir()


@pytest.mark.unit
def test_sweep_artifacts_reports_config_errors(tmp_path: Path) -> None:
    result = _run_script("--config", str(tmp_path / "missing.toml"), "--json", cwd=tmp_path)

    assert result.returncode == 1
    payload = json.loads(result.stdout)
    assert "config file not found" in payload["error"]
