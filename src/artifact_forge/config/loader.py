"""
artifact-forge — runtime config loader.

File: src/artifact_forge/config/loader.py

Purpose
- Build the effective runtime config from layered sources.

What should be included in this file
- Layering: built-in defaults, then ``artifact_forge.toml``, then
  ``ARTIFACT_FORGE_<SECTION>_<FIELD>`` environment variables, then CLI overrides.
- One environment binding per schema field, typed from the field's default.
- Storage, sandbox and log paths resolved against the config file directory.
- Redacted deterministic dump of effective config.

Non-functional requirements
- Same inputs always produce the same config.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final

from artifact_forge.config.schema import (
    OPTIONAL_FIELDS,
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
    redact_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "artifact_forge.toml"
ENV_PREFIX: Final[str] = "ARTIFACT_FORGE_"

_TRUTHY: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_FALSY: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def _parse_bool(raw: str) -> bool:
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise ValueError("must be a boolean (true/false/1/0/yes/no/on/off)")


def _parse_int(raw: str) -> int:
    try:
        return int(raw)
    except ValueError:
        raise ValueError("must be an integer") from None


def _parse_float(raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ValueError("must be a number") from None


_PARSERS: Final[dict[str, Callable[[str], object]]] = {
    "bool": _parse_bool,
    "int": _parse_int,
    "float": _parse_float,
    "str": str,
}


@dataclass(frozen=True, slots=True)
class EnvBinding:
    """Environment variable bound to one ``section.field`` of the config."""

    name: str
    section: str
    field: str
    kind: str

    def parse(self, raw: str) -> object:
        try:
            return _PARSERS[self.kind](raw.strip())
        except ValueError as exc:
            raise ConfigLoadError(f"{self.name} -> {self.section}.{self.field} {exc}") from exc


def env_var_for(*path: str) -> str:
    """Environment variable name bound to a config field path."""

    return ENV_PREFIX + "_".join(part.upper() for part in path)


def env_bindings() -> tuple[EnvBinding, ...]:
    """Every config field settable from the environment, sorted by variable name."""

    kinds: dict[tuple[str, ...], str] = {}
    for section, fields in default_config().items():
        for field_name, default in fields.items():
            kind = _kind_of(default)
            if kind is not None:
                kinds[(section, field_name)] = kind
    kinds.update(OPTIONAL_FIELDS)

    bindings = [
        EnvBinding(name=env_var_for(*path), section=path[0], field=path[1], kind=kind)
        for path, kind in kinds.items()
    ]
    return tuple(sorted(bindings, key=lambda binding: binding.name))


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults.

    Without ``config_path`` the loader looks for ``artifact_forge.toml`` in the
    working directory and silently uses defaults when it is absent. An
    explicit path must exist.
    """

    source = _resolve_config_path(config_path)
    file_layer = _read_toml(source, required=config_path is not None)
    # File errors are reported before env/CLI layers can mask them.
    config = assert_valid_config(merge_config(default_config(), file_layer))

    config = merge_config(config, _env_layer(os.environ if environ is None else environ))
    config = merge_config(config, _cli_layer(cli_overrides or {}))
    config = assert_valid_config(config)

    return assert_valid_config(normalize_paths(config, base_dir=source.parent))


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Resolve relative path fields against ``base_dir``; ``~`` and ``$VARS`` expand."""

    normalized = merge_config({}, config)
    for section, field_name in PATH_FIELDS:
        block = normalized.get(section)
        if not isinstance(block, dict):
            continue
        value = block.get(field_name)
        if isinstance(value, str):
            block[field_name] = _absolute_posix(value, base_dir)
    return normalized


def effective_config(config: Mapping[str, object]) -> dict[str, Any]:
    """Return a redacted effective config representation suitable for logging."""

    return redact_config(config)


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of redacted effective config."""

    return json.dumps(
        effective_config(config), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    )


def _resolve_config_path(config_path: str | Path | None) -> Path:
    candidate = Path.cwd() / DEFAULT_CONFIG_FILE if config_path is None else Path(config_path)
    return candidate.expanduser().resolve()


def _read_toml(path: Path, *, required: bool) -> dict[str, Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except FileNotFoundError as exc:
        if required:
            raise ConfigLoadError(f"config file not found: {path}") from exc
        return {}
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc


def _env_layer(environ: Mapping[str, str]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for binding in env_bindings():
        raw = environ.get(binding.name)
        if raw is not None:
            layer.setdefault(binding.section, {})[binding.field] = binding.parse(raw)
    return layer


def _cli_layer(cli_overrides: Mapping[str, object]) -> dict[str, dict[str, object]]:
    layer: dict[str, dict[str, object]] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        if value is None:
            continue
        section, _, field_name = key.partition(".")
        if not section or not field_name or "." in field_name:
            raise ConfigLoadError(f"invalid CLI override key {key!r}; expected section.field")
        layer.setdefault(section, {})[field_name] = value
    return layer


def _kind_of(value: object) -> str | None:
    # bool is checked first because it subclasses int.
    for kind, python_type in (("bool", bool), ("int", int), ("float", float), ("str", str)):
        if isinstance(value, python_type):
            return kind
    return None


def _absolute_posix(raw: str, base_dir: Path) -> str:
    candidate = Path(os.path.expandvars(raw)).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(candidate)).as_posix()


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "EnvBinding",
    "dump_effective_config",
    "effective_config",
    "env_bindings",
    "env_var_for",
    "load_config",
    "normalize_paths",
]
