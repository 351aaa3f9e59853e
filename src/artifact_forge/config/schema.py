"""
artifact-forge — configuration schema and validation.

File: src/artifact_forge/config/schema.py

Purpose
- Define the built-in defaults for storage, retention, sandbox and logging.
- Validate a merged config against per-field rules.

What should be included in this file
- Schema version check with migration guidance.
- One rule per field: parser plus required flag.
- Deep merge used by the loader to stack layers.
- Redaction of secret-looking keys for config dumps.

Functional requirements
- Every problem is reported at once as a ``section.field`` path and message.
- Unknown keys are rejected; secret-looking unknown keys get a dedicated message.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Callable, Collection, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, Literal, TypedDict

from artifact_forge.constants import (
    CONFIG_SCHEMA_VERSION,
    DEFAULT_EXECUTION_TIMEOUT_MS,
    DEFAULT_INDEX_PATH,
    DEFAULT_MAX_AGE_DAYS,
    DEFAULT_MAX_SIZE_GB,
    DEFAULT_STORAGE_DIR,
)

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION

_REDACTED: Final[str] = "<redacted>"
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_WORD_SPLIT = re.compile(r"[^a-z0-9]+")
_SECRET_WORDS: Final[frozenset[str]] = frozenset(
    {
        "api",
        "apikey",
        "auth",
        "credential",
        "credentials",
        "key",
        "passphrase",
        "passwd",
        "password",
        "private",
        "secret",
        "token",
    }
)

# Resolved against the config file directory by the loader.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("storage", "base_path"),
    ("storage", "index_path"),
    ("sandbox", "scratch_dir"),
    ("observability", "log_file"),
)

# Fields that default to unset; TOML has no null so they are simply omitted.
OPTIONAL_FIELDS: Final[dict[tuple[str, ...], Literal["str", "int", "float", "bool"]]] = {
    ("sandbox", "scratch_dir"): "str",
    ("observability", "log_file"): "str",
}


class MetaConfig(TypedDict):
    schema_version: int


class StorageConfig(TypedDict):
    base_path: str
    index_path: str


class RetentionConfig(TypedDict):
    max_age_days: float
    max_size_gb: float


class SandboxConfig(TypedDict):
    timeout_ms: int
    allow_network_access: bool
    scratch_dir: str | None


class ObservabilityConfig(TypedDict):
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"]
    log_format: Literal["json", "text"]
    log_file: str | None
    redact_secrets: bool


class ForgeConfig(TypedDict):
    meta: MetaConfig
    storage: StorageConfig
    retention: RetentionConfig
    sandbox: SandboxConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[ForgeConfig] = {
    "meta": {"schema_version": ConfigSchemaVersion},
    "storage": {
        "base_path": DEFAULT_STORAGE_DIR.as_posix(),
        "index_path": DEFAULT_INDEX_PATH.as_posix(),
    },
    "retention": {
        "max_age_days": DEFAULT_MAX_AGE_DAYS,
        "max_size_gb": DEFAULT_MAX_SIZE_GB,
    },
    "sandbox": {
        "timeout_ms": DEFAULT_EXECUTION_TIMEOUT_MS,
        "allow_network_access": False,
        "scratch_dir": None,
    },
    "observability": {
        "log_level": "INFO",
        "log_format": "json",
        "log_file": None,
        "redact_secrets": True,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """One rejected field."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised by ``assert_valid_config``; ``issues`` lists every rejected field."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        lines = [f"- {issue.path}: {issue.message}" for issue in self.issues]
        super().__init__("invalid config:\n" + ("\n".join(lines) or "- <unknown>"))


class _Issues(list[ConfigValidationIssue]):
    def add(self, path: str, message: str) -> None:
        self.append(ConfigValidationIssue(path=path, message=message))


FieldParser = Callable[[object, str, _Issues], object | None]


@dataclass(frozen=True, slots=True)
class _FieldRule:
    parse: FieldParser
    required: bool = True


def default_config() -> ForgeConfig:
    """Fresh copy of the built-in defaults; callers may mutate it."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    """Explain how to resolve a ``meta.schema_version`` mismatch."""

    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "rewrite artifact_forge.toml for the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "install a newer artifact-forge"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Return ``base`` with ``overlay`` merged in recursively; inputs are not modified."""

    merged: dict[str, Any] = _clone(base)
    for key in sorted(overlay):
        value = overlay[key]
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = _clone(value)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Check ``config`` against the field rules; ``config`` is ``None`` on failure."""

    issues = _Issues()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        return ConfigValidationResult(config=None, issues=tuple(issues))

    _check_keys(config, _SECTION_RULES.keys(), set(_SECTION_RULES), "", issues)

    normalized: dict[str, Any] = {}
    for name, rules in _SECTION_RULES.items():
        section = config.get(name)
        if section is None:
            continue
        if not isinstance(section, Mapping):
            issues.add(name, f"expected object, got {type(section).__name__}")
            continue
        normalized[name] = _validate_section(section, name, rules, issues)

    if issues:
        return ConfigValidationResult(config=None, issues=tuple(issues))
    return ConfigValidationResult(config=normalized, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validated config, or ``ConfigValidationError`` listing every issue."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def redact_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Copy of ``config`` with secret-looking non-schema keys masked."""

    if not isinstance(config, Mapping):
        return {}
    return _redact(config)


def _validate_section(
    payload: Mapping[str, object],
    path: str,
    rules: Mapping[str, _FieldRule],
    issues: _Issues,
) -> dict[str, Any]:
    required = {key for key, rule in rules.items() if rule.required}
    _check_keys(payload, rules.keys(), required, path, issues)

    out: dict[str, Any] = {}
    for key in sorted(rules):
        value = payload.get(key)
        if value is None:
            if not rules[key].required:
                out[key] = None
            continue
        parsed = rules[key].parse(value, f"{path}.{key}", issues)
        if parsed is not None:
            out[key] = parsed
    return out


def _check_keys(
    payload: Mapping[Any, object],
    allowed: Collection[str],
    required: set[str],
    path: str,
    issues: _Issues,
) -> None:
    prefix = f"{path}." if path else ""
    for key in sorted(payload, key=str):
        if not isinstance(key, str):
            issues.add(path or "<root>", f"object key must be string, got {type(key).__name__}")
        elif key not in allowed and _is_secret_key(key):
            issues.add(prefix + key, "embedded secret values are forbidden")
        elif key not in allowed:
            issues.add(prefix + key, "unknown field")
    for key in sorted(required - set(payload)):
        issues.add(prefix + key, "missing required field")


def _parse_text(value: object, path: str, issues: _Issues) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    text = value.strip()
    if not text:
        issues.add(path, "must not be empty")
        return None
    if "\x00" in text:
        issues.add(path, "must not contain NUL bytes")
        return None
    return text


def _parse_bool(value: object, path: str, issues: _Issues) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _parse_schema_version(value: object, path: str, issues: _Issues) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if value != ConfigSchemaVersion:
        issues.add(path, migration_guidance(value))
        return None
    return value


def _number_parser(*, integral: bool, minimum: float) -> FieldParser:
    expected = "integer" if integral else "number"
    accepted: tuple[type, ...] = (int,) if integral else (int, float)

    def parse(value: object, path: str, issues: _Issues) -> int | float | None:
        if isinstance(value, bool) or not isinstance(value, accepted):
            issues.add(path, f"expected {expected}, got {type(value).__name__}")
            return None
        number = value if integral else float(value)
        if not math.isfinite(number):
            issues.add(path, "must be finite")
            return None
        if number < minimum:
            issues.add(path, f"must be >= {minimum}")
            return None
        return number

    return parse


def _one_of(*choices: str) -> FieldParser:
    expected = ", ".join(sorted(choices))

    def parse(value: object, path: str, issues: _Issues) -> str | None:
        text = _parse_text(value, path, issues)
        if text is not None and text not in choices:
            issues.add(path, f"invalid value {text!r}; expected one of: {expected}")
            return None
        return text

    return parse


def _is_secret_key(key: str) -> bool:
    snake = _CAMEL_BOUNDARY.sub(r"\1_\2", key.strip()).lower()
    return any(word in _SECRET_WORDS for word in _WORD_SPLIT.split(snake) if word)


def _clone(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _clone(value[key]) for key in sorted(value)}
    return copy.deepcopy(value)


def _redact(value: object) -> Any:
    if isinstance(value, Mapping):
        return {
            key: _REDACTED
            if key not in _SCHEMA_KEYS and _is_secret_key(str(key))
            else _redact(value[key])
            for key in sorted(value)
        }
    if isinstance(value, (list, tuple)):
        return [_redact(item) for item in value]
    return value


_SECTION_RULES: Final[dict[str, dict[str, _FieldRule]]] = {
    "meta": {"schema_version": _FieldRule(_parse_schema_version)},
    "storage": {
        "base_path": _FieldRule(_parse_text),
        "index_path": _FieldRule(_parse_text),
    },
    "retention": {
        "max_age_days": _FieldRule(_number_parser(integral=False, minimum=0.0)),
        "max_size_gb": _FieldRule(_number_parser(integral=False, minimum=0.0)),
    },
    "sandbox": {
        "timeout_ms": _FieldRule(_number_parser(integral=True, minimum=1)),
        "allow_network_access": _FieldRule(_parse_bool),
        "scratch_dir": _FieldRule(_parse_text, required=False),
    },
    "observability": {
        "log_level": _FieldRule(_one_of("DEBUG", "INFO", "WARNING", "ERROR")),
        "log_format": _FieldRule(_one_of("json", "text")),
        "log_file": _FieldRule(_parse_text, required=False),
        "redact_secrets": _FieldRule(_parse_bool),
    },
}

_SCHEMA_KEYS: Final[frozenset[str]] = frozenset(
    key for section in DEFAULT_CONFIG.values() for key in section
)


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "ForgeConfig",
    "OPTIONAL_FIELDS",
    "PATH_FIELDS",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "redact_config",
    "validate_config",
]
