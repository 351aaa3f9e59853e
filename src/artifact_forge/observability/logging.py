"""Structured logging setup for structlog with JSON-lines output and redaction."""

from __future__ import annotations

import logging
import re
import sys
import threading
from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import IO, Any, Final, Literal

import structlog

LogFormat = Literal["json", "text"]

_REDACTED_VALUE: Final[str] = "***REDACTED***"

_SENSITIVE_KEY_TERMS: Final[tuple[str, ...]] = (
    "secret",
    "token",
    "password",
    "passphrase",
    "api_key",
    "apikey",
    "authorization",
    "credential",
    "cookie",
    "private_key",
    "client_secret",
)

_SENSITIVE_ASSIGNMENT_PATTERN: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|client_secret|authorization)\b\s*([:=])\s*([^\s,;]+)"
)
_BEARER_TOKEN_PATTERN: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")
_OPENAI_KEY_PATTERN: Final[re.Pattern[str]] = re.compile(r"\bsk-[A-Za-z0-9]{12,}\b")

_STREAM_LOCK = threading.Lock()
_OWNED_STREAM: IO[str] | None = None


def configure_logging(
    level: int | str = "INFO",
    log_format: LogFormat = "json",
    log_file: Path | str | None = None,
    *,
    redact_secrets: bool = True,
    stream: IO[str] | None = None,
) -> None:
    """Configure structlog process-wide.

    Events go to ``log_file`` (appended, one JSON object per line) when given,
    else to ``stream`` (default ``sys.stderr``) so stdout stays free for
    command output.
    """

    numeric_level = _parse_log_level(level)
    if log_format not in ("json", "text"):
        raise ValueError(f"unsupported log format {log_format!r}")

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if redact_secrets:
        processors.append(redact_event)
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(sort_keys=True, default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    target = _open_target(log_file, stream)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        logger_factory=structlog.PrintLoggerFactory(file=target),
        cache_logger_on_first_use=False,
    )


def configure_from_config(config: Mapping[str, Any]) -> None:
    """Configure logging from the ``observability`` section of a loaded config."""

    section = config.get("observability", {})
    configure_logging(
        level=section.get("log_level", "INFO"),
        log_format=section.get("log_format", "json"),
        log_file=section.get("log_file"),
        redact_secrets=bool(section.get("redact_secrets", True)),
    )


def shutdown_logging() -> None:
    """Close a log file opened by ``configure_logging`` and reset structlog."""

    global _OWNED_STREAM
    with _STREAM_LOCK:
        if _OWNED_STREAM is not None:
            _OWNED_STREAM.close()
            _OWNED_STREAM = None
    structlog.reset_defaults()


def redact_event(
    _logger: object,
    _method_name: str,
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """structlog processor masking sensitive keys and inline secrets."""

    for key in list(event_dict):
        event_dict[key] = _redact_value(event_dict[key], key_context=key)
    return event_dict


def _open_target(log_file: Path | str | None, stream: IO[str] | None) -> IO[str]:
    global _OWNED_STREAM
    with _STREAM_LOCK:
        if _OWNED_STREAM is not None:
            _OWNED_STREAM.close()
            _OWNED_STREAM = None
        if log_file is None:
            return stream if stream is not None else sys.stderr
        path = Path(log_file).expanduser()
        path.parent.mkdir(parents=True, exist_ok=True)
        _OWNED_STREAM = path.open("a", encoding="utf-8")
        return _OWNED_STREAM


def _parse_log_level(value: int | str) -> int:
    if isinstance(value, int):
        return value

    if not isinstance(value, str):
        raise ValueError(f"level must be int or str, got {type(value).__name__}")

    normalized = value.strip().upper()
    parsed = logging.getLevelName(normalized)
    if isinstance(parsed, int):
        return parsed

    raise ValueError(f"unsupported logging level {value!r}")


def _redact_value(value: object, *, key_context: str | None) -> object:
    if key_context is not None and _requires_redaction_for_key(key_context):
        return _REDACTED_VALUE

    if isinstance(value, str):
        return _redact_string(value)

    if isinstance(value, (list, tuple)):
        return [_redact_value(item, key_context=None) for item in value]

    if isinstance(value, dict):
        return {key: _redact_value(item, key_context=str(key)) for key, item in value.items()}

    return value


def _requires_redaction_for_key(key: str) -> bool:
    key_lower = key.lower()
    return any(term in key_lower for term in _SENSITIVE_KEY_TERMS)


def _redact_string(text: str) -> str:
    redacted = _SENSITIVE_ASSIGNMENT_PATTERN.sub(
        lambda match: f"{match.group(1)}{match.group(2)}{_REDACTED_VALUE}", text
    )
    redacted = _BEARER_TOKEN_PATTERN.sub(f"Bearer {_REDACTED_VALUE}", redacted)
    return _OPENAI_KEY_PATTERN.sub(_REDACTED_VALUE, redacted)


__all__ = [
    "LogFormat",
    "configure_from_config",
    "configure_logging",
    "redact_event",
    "shutdown_logging",
]
