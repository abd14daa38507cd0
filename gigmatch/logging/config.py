"""Logging configuration: JSON or key-value lines on stdout."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Literal

from .context import get_log_context

LogFormat = Literal["json", "key-value"]

SERVICE_NAME = "gigmatch"

# LogRecord attributes that are not user extras
_RECORD_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName", "levelname",
    "levelno", "lineno", "module", "msecs", "message", "pathname", "process",
    "processName", "relativeCreated", "thread", "threadName", "asctime",
    "exc_info", "exc_text", "stack_info", "taskName",
}


class ContextualFilter(logging.Filter):
    """Stamp records with service metadata and the active log context.

    Explicit ``extra`` fields on the call take precedence over context.
    """

    def __init__(self, service: str = SERVICE_NAME, environment: str = "local"):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = self.service
        record.environment = self.environment

        for key, value in get_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)

        return True


def _extras(record: logging.LogRecord, skip: set) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in skip and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """Single-line JSON objects with stable field names."""

    def format(self, record: logging.LogRecord) -> str:
        log_obj: Dict[str, Any] = {
            "timestamp": self._format_timestamp(record.created),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key, value in _extras(record, _RECORD_ATTRS).items():
            if isinstance(value, datetime):
                log_obj[key] = value.isoformat()
            elif isinstance(value, (str, int, float, bool, type(None), list, dict)):
                log_obj[key] = value
            else:
                log_obj[key] = str(value)

        if record.exc_info:
            log_obj["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)

    @staticmethod
    def _format_timestamp(created: float) -> str:
        dt = datetime.fromtimestamp(created, tz=timezone.utc)
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"


class KeyValueFormatter(logging.Formatter):
    """Human-readable ``timestamp [level] name: message key=value`` lines."""

    SKIP_ATTRS = _RECORD_ATTRS | {"service", "environment"}

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        pairs = []
        for key, value in sorted(_extras(record, self.SKIP_ATTRS).items()):
            if isinstance(value, str):
                value_str = f'"{value}"' if any(c in value for c in " =,") else value
            elif isinstance(value, datetime):
                value_str = value.isoformat()
            elif isinstance(value, bool):
                value_str = str(value).lower()
            elif value is None:
                value_str = "null"
            else:
                value_str = str(value)
            pairs.append(f"{key}={value_str}")

        return f"{base} {' '.join(pairs)}" if pairs else base


def configure_logging(
    level: str = "INFO",
    format_type: LogFormat = "key-value",
    environment: str = "local",
) -> None:
    """Configure the root logger.

    Args:
        level: Logging level name
        format_type: 'json' or 'key-value'
        environment: Environment label stamped on every record

    Raises:
        ValueError: If level or format_type is invalid
    """
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    if format_type not in ("json", "key-value"):
        raise ValueError(f"Invalid log format: {format_type}. Must be 'json' or 'key-value'")

    handler = logging.StreamHandler(sys.stdout)
    if format_type == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            KeyValueFormatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    handler.addFilter(ContextualFilter(service=SERVICE_NAME, environment=environment))

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    # APScheduler is chatty at INFO
    logging.getLogger("apscheduler").setLevel(max(numeric_level, logging.WARNING))

    logging.getLogger(__name__).info(
        "Logging configured",
        extra={
            "event": "logging.configured",
            "component": "logging",
            "log_level": level.upper(),
            "log_format": format_type,
        },
    )
