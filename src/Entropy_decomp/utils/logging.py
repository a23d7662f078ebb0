"""Structured logging for pipeline runs.

Stdlib records and structlog events both come out as one JSON object per
line, with secret-bearing fields masked and the current job id attached as
``correlation_id``. Call :func:`configure_logging` once per worker process;
the orchestrator binds the correlation id around each run.
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterable
from contextvars import ContextVar, Token
from typing import Any

import structlog

from Entropy_decomp.config.settings import LoggingSettings

MASK = "***"

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)

# Attributes every LogRecord carries; anything else arrived through ``extra=``.
_RECORD_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def _masked(value: Any, fields: frozenset[str]) -> Any:
    if isinstance(value, dict):
        return {key: MASK if key.lower() in fields else _masked(item, fields) for key, item in value.items()}
    if isinstance(value, list):
        return [_masked(item, fields) for item in value]
    return value


class JsonFormatter(logging.Formatter):
    """Render stdlib records as sorted single-line JSON."""

    def __init__(self, *, scrub_fields: Iterable[str] | None = None) -> None:
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S%z")
        self.scrub_fields = frozenset(field.lower() for field in scrub_fields or ())

    def format(self, record: logging.LogRecord) -> str:
        extra = {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRIBUTES}
        payload: dict[str, Any] = {
            **_masked(extra, self.scrub_fields),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "time": self.formatTime(record, self.datefmt),
        }
        correlation_id = _correlation_id.get()
        if correlation_id:
            payload["correlation_id"] = correlation_id
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def _mask_event(fields: frozenset[str]) -> structlog.types.Processor:
    def processor(_: Any, __: str, event_dict: structlog.types.EventDict) -> structlog.types.EventDict:
        return _masked(event_dict, fields)

    return processor


def configure_logging(level: int | str | None = None, *, settings: LoggingSettings | None = None) -> None:
    """Install JSON logging for stdlib and structlog.

    ``settings`` wins over ``level`` when both are given. Handlers installed by
    pytest's log capture are kept so ``caplog`` sees formatted records.
    """
    if settings is None:
        name = logging.getLevelName(level) if isinstance(level, int) else level or "INFO"
        settings = LoggingSettings(level=name)
    level_value = logging.getLevelName(settings.level.upper())
    if not isinstance(level_value, int):
        level_value = logging.INFO
    formatter = JsonFormatter(scrub_fields=settings.scrub_fields)

    handlers: list[logging.Handler] = [
        handler for handler in logging.getLogger().handlers if type(handler).__module__.startswith("_pytest.")
    ]
    handlers.append(logging.StreamHandler(sys.stdout))
    for handler in handlers:
        handler.setFormatter(formatter)
    logging.basicConfig(level=level_value, handlers=handlers, force=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _mask_event(formatter.scrub_fields),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(sort_keys=True)
            if settings.json_output
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )


def bind_correlation_id(value: str) -> Token[str | None]:
    """Attach ``value`` to every log line emitted from the current context."""
    structlog.contextvars.bind_contextvars(correlation_id=value)
    return _correlation_id.set(value)


def reset_correlation_id(token: Token[str | None] | None) -> None:
    if token is not None:
        _correlation_id.reset(token)
    structlog.contextvars.unbind_contextvars("correlation_id")


def get_correlation_id() -> str | None:
    return _correlation_id.get()


__all__ = [
    "MASK",
    "JsonFormatter",
    "bind_correlation_id",
    "configure_logging",
    "get_correlation_id",
    "reset_correlation_id",
]
