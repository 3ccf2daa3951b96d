"""
Structured logging for the archive engine.

Loggers returned by get_logger() take keyword context next to the message:

    logger = get_logger(__name__)
    logger.info("Archive written", model="Book", key=(1,))

The context ends up on the record as `extra_data`. StructuredFormatter
emits it as JSON for production; DevelopmentFormatter appends it as
key=value pairs.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, MutableMapping, Optional

from archivable.config.settings import Settings, get_settings


def _context_of(record: logging.LogRecord) -> Optional[dict[str, Any]]:
    return getattr(record, "extra_data", None) or None


class StructuredFormatter(logging.Formatter):
    """One JSON object per line, for log aggregation."""

    def __init__(self, include_source: bool = False):
        super().__init__()
        self.include_source = include_source

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        context = _context_of(record)
        if context:
            entry["data"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        if self.include_source:
            entry["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }
        # Keys and values such as tuples or datetimes are stringified
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):
    """Colored single-line output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{clock} {record.levelname:<8}{self.RESET} [{record.name}] {record.getMessage()}"

        context = _context_of(record)
        if context:
            line += "  " + " ".join(f"{key}={value}" for key, value in context.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class StructuredLogger(logging.LoggerAdapter):
    """
    Adapter whose level methods accept keyword context.

    Keywords the logging module understands (exc_info, stack_info,
    stacklevel, extra) pass through; every other keyword becomes context.
    """

    PASSTHROUGH = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        context = {key: kwargs.pop(key) for key in list(kwargs) if key not in self.PASSTHROUGH}
        extra = dict(kwargs.get("extra") or {})
        extra["extra_data"] = context or None
        kwargs["extra"] = extra
        return msg, kwargs


def setup_logging(settings: Settings | None = None) -> None:
    """
    Install a stdout handler on the root logger.

    Applications embedding the engine call this once at startup; the
    engine itself never configures handlers.
    """
    settings = settings or get_settings()
    if settings.debug:
        level = logging.DEBUG
    else:
        level = logging.getLevelName(settings.log_level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    if settings.environment == "production":
        handler.setFormatter(StructuredFormatter(include_source=settings.debug))
    else:
        handler.setFormatter(DevelopmentFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.sql_echo else logging.WARNING
    )


def get_logger(name: str) -> StructuredLogger:
    """
    Logger for a module of the engine.

    Usage:
        logger = get_logger(__name__)
        logger.error("Bulk archive record failed", key=(3,), exc_info=True)
    """
    return StructuredLogger(logging.getLogger(name), {})
