from __future__ import annotations

import logging
import re
import sys
from typing import Any

import structlog

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

_SLACK_TOKEN_RE = re.compile(r"xox[abpoers]-[A-Za-z0-9-]+")
_BEARER_RE = re.compile(r"(Bearer\s+)[^\s\"']+")


def _truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _level_value(value: str | None, *, default: str = "info") -> int:
    fallback = _LEVELS[default]
    if not value:
        return fallback
    return _LEVELS.get(value.strip().lower(), fallback)


def _redact_text(text: str) -> str:
    redacted = _SLACK_TOKEN_RE.sub("[REDACTED_TOKEN]", text)
    return _BEARER_RE.sub(r"\1[REDACTED]", redacted)


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return _redact_text(value)
    if isinstance(value, bytes):
        return _redact_text(value.decode("utf-8", "replace"))
    if isinstance(value, dict):
        return {key: _redact_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_redact_value(item) for item in value]
    if isinstance(value, tuple):
        return tuple(_redact_value(item) for item in value)
    return value


def _redact_event(
    _logger: Any, _method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    return {key: _redact_value(value) for key, value in event_dict.items()}


def setup_logging(*, level: str | None = None, json: bool = False) -> None:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]
    if json:
        processors.append(structlog.processors.dict_tracebacks)
        processors.append(_redact_event)
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(_redact_event)
        processors.append(
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())
        )
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_value(level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str | None = None) -> Any:
    if name is None:
        return structlog.get_logger()
    return structlog.get_logger(logger_name=name)
