"""
Logging Configuration

Routes both stdlib loggers (service layer, API) and structlog event loggers
(storage, promotion, audit) through a single root handler. Production uses
one JSON object per line; development uses a colored single-line format.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

import structlog


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    PRETTY = "pretty"
    SIMPLE = "simple"


SERVICE_NAME = os.getenv("SERVICE_NAME", "callflow-engine")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

# Identifiers lifted to the top level of JSON lines so they can be indexed
CONTEXT_KEYS = ("tenant_id", "flow_id", "version_id", "actor")

# Attributes every LogRecord carries; anything else came in through `extra`
_STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
    "taskName",
}

_NOISY_LOGGERS = ("httpx", "httpcore", "asyncio", "aiosqlite", "sqlalchemy.engine")


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed via `extra=` on a log call."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _STANDARD_ATTRS and not key.startswith("_")
    }


def _format_exception(record: logging.LogRecord) -> str:
    return "".join(traceback.format_exception(*record.exc_info))


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "service": SERVICE_NAME,
            "env": ENVIRONMENT,
        }

        fields = extra_fields(record)
        for key in CONTEXT_KEYS:
            if key in fields:
                entry[key] = fields.pop(key)
        if fields:
            entry["extra"] = fields

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "value": str(exc_value) if exc_value is not None else None,
                "trace": _format_exception(record),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


class PrettyFormatter(logging.Formatter):
    """Colored single-line output for local development."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[2m",
        logging.INFO: "\033[34m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    DIM = "\033[2m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        line = (
            f"{datetime.now():%H:%M:%S} "
            f"{color}{record.levelname[:4]}{self.RESET} "
            f"{self.DIM}[{record.name}]{self.RESET} {record.getMessage()}"
        )

        fields = extra_fields(record)
        if fields:
            line += " " + " ".join(f"{key}={value}" for key, value in fields.items())

        if record.exc_info:
            line += "\n" + _format_exception(record)
        return line


class SimpleFormatter(logging.Formatter):
    """Plain text without colors, for files and CI output."""

    def format(self, record: logging.LogRecord) -> str:
        return f"{record.levelname} {record.name} {record.getMessage()}"


FORMATTERS = {
    LogFormat.JSON: JSONFormatter,
    LogFormat.PRETTY: PrettyFormatter,
    LogFormat.SIMPLE: SimpleFormatter,
}


def get_formatter(format: str) -> logging.Formatter:
    """Formatter for a format name; unknown names fall back to simple."""
    try:
        return FORMATTERS[LogFormat(format)]()
    except ValueError:
        return SimpleFormatter()


def setup_logging(
    level: str = "INFO",
    format: str = "pretty",
    service_name: Optional[str] = None,
) -> None:
    """
    Install the root handler and route structlog through it.

    Safe to call more than once; previous root handlers are replaced.

    Args:
        level: Root log level name
        format: json, pretty or simple
        service_name: Overrides the service name in JSON lines
    """
    global SERVICE_NAME
    if service_name:
        SERVICE_NAME = service_name

    root = logging.getLogger()
    root.setLevel(level.upper())
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(get_formatter(format))
    root.addHandler(handler)

    # structlog renders the event and its key/values into the record message
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.KeyValueRenderer(key_order=["event"], drop_missing=True),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.debug(f"Logging configured: level={level} format={format}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


__all__ = [
    "LogFormat",
    "CONTEXT_KEYS",
    "JSONFormatter",
    "PrettyFormatter",
    "SimpleFormatter",
    "get_formatter",
    "extra_fields",
    "setup_logging",
    "get_logger",
]
